import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.config import settings
from app.models.refresh_token import RefreshToken
from app.models.user import User
from app.repositories.refresh_token_repository import (
    RefreshTokenRepository,
    refresh_token_repository,
)
from app.services.key_service import SigningKeyStore
from app.utils.exceptions import (
    AccountNotFoundException,
    InvalidFormatException,
    RefreshTokenExpiredException,
    ReuseDetectedException,
    TokenNotFoundException,
)
from app.utils.security import decode_token, encode_token

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_refresh_token(value: str) -> str:
    """Normalise a client-supplied refresh token to its canonical UUID string."""
    try:
        return str(uuid.UUID(value))
    except (ValueError, TypeError, AttributeError):
        raise InvalidFormatException("Invalid refresh token format")


class TokenManager:
    """
    Issues access/refresh token pairs and drives the refresh-token state machine.

    A refresh token row is ACTIVE (unrevoked, unexpired), EXPIRED (unrevoked,
    past expiry) or REVOKED. Every row descending from one login shares a
    familyId; presenting a REVOKED row is treated as theft and revokes the
    whole family.
    """

    def __init__(
        self,
        key_store: SigningKeyStore,
        repository: RefreshTokenRepository = refresh_token_repository,
        access_ttl: timedelta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_ttl: timedelta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        issuer: str = settings.JWT_ISSUER,
    ):
        self.key_store = key_store
        self.repository = repository
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer

    # ─── Issue ────────────────────────────────────────────────────────────────
    def issue(self, db: Session, user_id: int, email: str) -> dict:
        """Start a new session: new family, one ACTIVE refresh row, one access token."""
        family_id = str(uuid.uuid4())
        result = self._issue_with_family(db, user_id, email, family_id)
        db.commit()
        logger.info(f"Issued new token family {family_id} for user {user_id}")
        return result

    # ─── Rotate ───────────────────────────────────────────────────────────────
    def rotate(self, db: Session, refresh_token: str) -> dict:
        """
        Exchange a refresh token for a new pair in the same family.
        The presented token is single-use.
        """
        token_id = parse_refresh_token(refresh_token)

        stored = self.repository.find_by_id(db, token_id)
        if not stored:
            raise TokenNotFoundException("Invalid refresh token")

        if stored.revoked:
            self._reject_reuse(db, stored)

        # Plain expiry is not evidence of theft; siblings stay untouched
        if _as_utc(stored.expiresAt) < datetime.now(timezone.utc):
            raise RefreshTokenExpiredException("Refresh token expired")

        user = db.get(User, stored.userId)
        if not user:
            raise AccountNotFoundException(f"Account {stored.userId} not found")

        # Only the caller whose guarded UPDATE flips the row may mint a successor;
        # a concurrent caller for the same id loses here even though its read
        # above saw an unrevoked row.
        if not self.repository.conditional_revoke(db, token_id):
            self._reject_reuse(db, stored)

        result = self._issue_with_family(db, user.id, user.email, stored.familyId)
        db.commit()
        logger.info(f"Rotated refresh token in family {stored.familyId} for user {user.id}")
        return result

    # ─── Revoke ───────────────────────────────────────────────────────────────
    def logout(self, db: Session, refresh_token: str) -> None:
        """
        Resolve the token to its family and revoke the whole family.
        A token that is already revoked fails like a replayed one; the family
        revoke only touches unrevoked rows, so repeating a logout changes nothing.
        """
        token_id = parse_refresh_token(refresh_token)
        stored = self.repository.find_by_id(db, token_id)
        if not stored:
            raise TokenNotFoundException("Invalid refresh token")
        if stored.revoked:
            self._reject_reuse(db, stored)
        self.revoke_family(db, stored.familyId)

    def revoke_family(self, db: Session, family_id: str) -> int:
        count = self.repository.revoke_by_family(db, family_id)
        db.commit()
        logger.info(f"Revoked {count} refresh token(s) in family {family_id}")
        return count

    def revoke_all_for_user(self, db: Session, user_id: int) -> int:
        """Kill every outstanding session of a user, e.g. after a credential change."""
        count = self.repository.revoke_by_user(db, user_id)
        db.commit()
        logger.info(f"Revoked {count} refresh token(s) for user {user_id}")
        return count

    # ─── Housekeeping ─────────────────────────────────────────────────────────
    def purge_revoked_or_expired(self, db: Session) -> int:
        count = self.repository.purge_revoked_or_expired(db, datetime.now(timezone.utc))
        db.commit()
        logger.info(f"Purged {count} revoked or expired refresh token(s)")
        return count

    # ─── Access tokens ────────────────────────────────────────────────────────
    def verify_access_token(self, token: str) -> dict:
        """Verify against the currently active key only; there is no grace window."""
        return decode_token(token, self.key_store.active_key(), issuer=self.issuer)

    # ─── Internals ────────────────────────────────────────────────────────────
    def _reject_reuse(self, db: Session, stored: RefreshToken) -> None:
        token_id, user_id, family_id = stored.id, stored.userId, stored.familyId
        logger.warning(
            f"Refresh token reuse detected for user {user_id}; revoking family {family_id}"
        )
        self.revoke_family(db, family_id)
        raise ReuseDetectedException(f"Token {token_id} reused; family {family_id} revoked")

    def _build_claims(self, user_id: int, email: str, issued_at: datetime, expires_at: datetime) -> dict:
        return {
            "sub":    email,
            "iss":    self.issuer,
            "iat":    int(issued_at.timestamp()),
            "exp":    int(expires_at.timestamp()),
            "email":  email,
            "userId": user_id,
        }

    def _issue_with_family(self, db: Session, user_id: int, email: str, family_id: str) -> dict:
        now = datetime.now(timezone.utc)
        access_expiry = now + self.access_ttl
        refresh_expiry = now + self.refresh_ttl

        access_token = encode_token(
            self._build_claims(user_id, email, now, access_expiry),
            self.key_store.active_key(),
        )
        refresh_token = RefreshToken(
            id=str(uuid.uuid4()),
            userId=user_id,
            familyId=family_id,
            issuedAt=now,
            expiresAt=refresh_expiry,
            revoked=False,
        )
        self.repository.save(db, refresh_token)

        return {
            "accessToken":           access_token,
            "refreshToken":          refresh_token.id,
            "tokenType":             "Bearer",
            "accessTokenExpiresAt":  access_expiry,
            "refreshTokenExpiresAt": refresh_expiry,
        }
