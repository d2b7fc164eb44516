from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.services.key_service import SigningKeyStore
from app.services.token_service import TokenManager
from app.utils.exceptions import (
    AccountNotFoundException,
    ForbiddenException,
    MissingCredentialsException,
)

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Token Core Components ────────────────────────────────────────────────────
# Both live on app.state; created in create_app() and initialized in the lifespan.

def get_key_store(request: Request) -> SigningKeyStore:
    return request.app.state.key_store


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


# ─── Get Current Claims ───────────────────────────────────────────────────────
def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    token_manager: TokenManager = Depends(get_token_manager),
) -> dict:
    """
    Verify the Bearer access token against the active signing key.
    Raises 401 if the token is missing, malformed, expired, or was signed
    by a key that has since been rotated out.
    """
    if not credentials:
        raise MissingCredentialsException("No authentication token provided")
    return token_manager.verify_access_token(credentials.credentials)


# ─── Get Current User ─────────────────────────────────────────────────────────
def get_current_user(
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the account behind a verified access token.
    Raises 401 if the account no longer exists, 403 if it is inactive.
    """
    user_id = claims.get("userId")
    user = db.get(User, int(user_id)) if user_id is not None else None
    if not user:
        raise AccountNotFoundException(f"Account {user_id} from token not found")

    if not user.isActive:
        raise ForbiddenException("Your account has been deactivated. Contact admin.")

    return user
