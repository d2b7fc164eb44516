"""
Persistence for issued refresh tokens.

None of these methods commit. The caller owns the transaction so that
"revoke old row + insert successor" lands as one unit.
"""
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import RefreshToken


class RefreshTokenRepository:

    def save(self, db: Session, token: RefreshToken) -> RefreshToken:
        db.add(token)
        db.flush()
        return token

    def find_by_id(self, db: Session, token_id: str) -> RefreshToken | None:
        return db.query(RefreshToken).filter(RefreshToken.id == token_id).first()

    def conditional_revoke(self, db: Session, token_id: str) -> bool:
        """
        Flip `revoked` false -> true in a single guarded UPDATE.

        Returns True only for the caller whose statement changed the row.
        A concurrent caller for the same id gets 0 affected rows and False.
        """
        updated = (
            db.query(RefreshToken)
            .filter(RefreshToken.id == token_id, RefreshToken.revoked == False)  # noqa: E712
            .update({"revoked": True})
        )
        return updated == 1

    def revoke_by_family(self, db: Session, family_id: str) -> int:
        return (
            db.query(RefreshToken)
            .filter(RefreshToken.familyId == family_id, RefreshToken.revoked == False)  # noqa: E712
            .update({"revoked": True})
        )

    def revoke_by_user(self, db: Session, user_id: int) -> int:
        return (
            db.query(RefreshToken)
            .filter(RefreshToken.userId == user_id, RefreshToken.revoked == False)  # noqa: E712
            .update({"revoked": True})
        )

    def purge_revoked_or_expired(self, db: Session, now: datetime) -> int:
        return (
            db.query(RefreshToken)
            .filter(or_(RefreshToken.revoked == True, RefreshToken.expiresAt < now))  # noqa: E712
            .delete(synchronize_session=False)
        )


refresh_token_repository = RefreshTokenRepository()
