from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.utils.exceptions import (
    MalformedTokenException,
    SignatureInvalidException,
    TokenExpiredException,
)


# ─── Encode ───────────────────────────────────────────────────────────────────
def encode_token(claims: dict[str, Any], key) -> str:
    """
    Sign claims as a compact JWS with the given SigningKey.
    The key id goes in the header so verifiers can pick the matching JWK.
    """
    return jwt.encode(
        claims,
        key.private_pem,
        algorithm=settings.JWT_ALGORITHM,
        headers={"kid": key.kid},
    )


# ─── Decode ───────────────────────────────────────────────────────────────────
def read_header(token: str) -> dict[str, Any]:
    """Parse the JOSE header without verifying anything."""
    try:
        return jwt.get_unverified_header(token)
    except JWTError:
        raise MalformedTokenException("Token header could not be parsed")


def decode_token(token: str, key, issuer: str | None = None) -> dict[str, Any]:
    """
    Verify and decode a token against exactly one key.

    Raises:
        MalformedTokenException:   token structure cannot be parsed
        TokenExpiredException:     signature fine but `exp` is in the past
        SignatureInvalidException: signature does not verify with `key`
                                   (e.g. signed before a key rotation) or
                                   a registered claim check failed
    """
    header = read_header(token)
    try:
        return jwt.decode(
            token,
            key.public_pem,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=issuer,
        )
    except ExpiredSignatureError:
        raise TokenExpiredException("Access token has expired")
    except JWTError as e:
        raise SignatureInvalidException(
            f"Verification failed for kid={header.get('kid')} "
            f"against active kid={key.kid}: {e}"
        )
