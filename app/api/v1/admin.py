import logging

from fastapi import APIRouter, Depends, status

from app.dependencies import get_current_claims, get_key_store
from app.schemas.common import SuccessResponse, success_response
from app.services.key_service import SigningKeyStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


# ─── POST /admin/keys/rotate ──────────────────────────────────────────────────
@router.post(
    "/keys/rotate",
    status_code=status.HTTP_200_OK,
    summary="Rotate the signing key immediately",
    response_model=SuccessResponse,
)
def rotate_keys(
    key_store: SigningKeyStore = Depends(get_key_store),
    claims: dict = Depends(get_current_claims),
):
    """
    Replaces the active signing key.
    Every access token signed with the previous key stops verifying at once,
    including the one used to call this endpoint.
    """
    logger.info(f"Manual key rotation requested by {claims.get('sub')}")
    key = key_store.rotate()
    return success_response("Keys rotated successfully", {"kid": key.kid})
