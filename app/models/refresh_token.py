from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, TIMESTAMP, Index
from sqlalchemy.orm import relationship
from app.database import Base


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    # Opaque random UUID handed to the client; no claims are encoded in it
    id        = Column(String(36), primary_key=True)
    userId    = Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    familyId  = Column("family_id", String(36), nullable=False)
    issuedAt  = Column("issued_at", TIMESTAMP(timezone=True), nullable=False)
    expiresAt = Column("expires_at", TIMESTAMP(timezone=True), nullable=False)
    revoked   = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_refresh_tokens_family_id", "family_id"),
        Index("ix_refresh_tokens_user_id", "user_id"),
    )

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return (
            f"<RefreshToken id={self.id} userId={self.userId} "
            f"familyId={self.familyId} revoked={self.revoked}>"
        )
