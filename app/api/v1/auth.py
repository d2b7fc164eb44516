import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user, get_token_manager
from app.models.user import User
from app.schemas.auth import (
    AuthTokenResponse, LogoutRequest, RefreshTokenRequest, UserProfileResponse,
)
from app.schemas.common import ErrorResponse, SuccessResponse, success_response
from app.services.token_service import TokenManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

UNAUTHORIZED_RESPONSE = {401: {"model": ErrorResponse, "description": "Invalid or expired credentials"}}


# ─── POST /auth/refresh ───────────────────────────────────────────────────────
@router.post(
    "/refresh",
    status_code=status.HTTP_200_OK,
    summary="Exchange a refresh token for a new access + refresh token pair",
    response_model=SuccessResponse[AuthTokenResponse],
    responses=UNAUTHORIZED_RESPONSE,
)
def refresh_token(
    data: RefreshTokenRequest,
    db: Session = Depends(get_db),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """
    Rotate a refresh token.
    - The presented refresh token is single-use; a new one is returned.
    - Presenting an already-used token revokes every token of that login.
    """
    logger.info("Token refresh request received")
    result = token_manager.rotate(db, data.refreshToken)
    return success_response("Token refreshed", result)


# ─── POST /auth/logout ────────────────────────────────────────────────────────
@router.post(
    "/logout",
    status_code=status.HTTP_200_OK,
    summary="Revoke the refresh token family (logout)",
    response_model=SuccessResponse,
    responses=UNAUTHORIZED_RESPONSE,
)
def logout(
    data: LogoutRequest,
    db: Session = Depends(get_db),
    token_manager: TokenManager = Depends(get_token_manager),
):
    logger.info("Logout request received")
    token_manager.logout(db, data.refreshToken)
    return success_response("Logged out successfully", None)


# ─── POST /auth/logout-all ────────────────────────────────────────────────────
@router.post(
    "/logout-all",
    status_code=status.HTTP_200_OK,
    summary="Revoke every refresh token of the current user",
    response_model=SuccessResponse,
    responses=UNAUTHORIZED_RESPONSE,
)
def logout_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    token_manager: TokenManager = Depends(get_token_manager),
):
    """
    Ends every session of the caller on every device.
    Access tokens already issued stay valid until they expire.
    """
    revoked = token_manager.revoke_all_for_user(db, current_user.id)
    return success_response("Logged out from all sessions", {"revoked": revoked})


# ─── GET /auth/me ─────────────────────────────────────────────────────────────
@router.get(
    "/me",
    status_code=status.HTTP_200_OK,
    summary="Get current authenticated user profile",
    response_model=SuccessResponse[UserProfileResponse],
    responses=UNAUTHORIZED_RESPONSE,
)
def get_me(current_user: User = Depends(get_current_user)):
    return success_response(
        "User profile retrieved",
        UserProfileResponse.model_validate(current_user),
    )
