from fastapi import APIRouter, Depends, status

from app.dependencies import get_key_store
from app.services.key_service import SigningKeyStore

router = APIRouter()


# ─── GET /.well-known/jwks.json ───────────────────────────────────────────────
@router.get(
    "/.well-known/jwks.json",
    status_code=status.HTTP_200_OK,
    summary="Public signing key as a JSON Web Key Set",
)
def get_jwks(key_store: SigningKeyStore = Depends(get_key_store)):
    """
    Returns only the currently active public key, unwrapped, so standard JWKS
    clients can consume it. No authentication required.
    """
    return key_store.public_key_set()
