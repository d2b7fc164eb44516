"""
RSA signing-key lifecycle.

Exactly one SigningKey is active at a time. Keys are immutable; rotation
builds a complete new key and swaps the single `_active` reference, so a
reader sees either the old key or the new one, never a mix.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk

from app.config import settings
from app.utils.exceptions import KeyGenerationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigningKey:
    kid:         str
    private_pem: str = field(repr=False)
    public_pem:  str
    created_at:  datetime

    def public_jwk(self) -> dict:
        """Public members only (kty, alg, n, e) plus kid/use."""
        data = jwk.construct(self.public_pem, algorithm=settings.JWT_ALGORITHM).to_dict()
        data["kid"] = self.kid
        data["use"] = "sig"
        return data


def _new_kid() -> str:
    return str(uuid.uuid4())


def _to_pem(private_key) -> tuple[str, str]:
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


class SigningKeyStore:

    def __init__(self, key_size: int = settings.RSA_KEY_SIZE):
        self._key_size = key_size
        self._active: SigningKey | None = None

    # ─── Startup ──────────────────────────────────────────────────────────────
    def initialize(
        self,
        public_pem: str | None = None,
        private_pem: str | None = None,
    ) -> SigningKey:
        """
        Activate the configured key pair, or generate one if none is configured.
        Raises KeyGenerationError; callers at startup must let it abort the process.
        """
        logger.info("Initializing signing key store...")
        if public_pem and private_pem:
            logger.info("Using configured RSA key pair")
            key = self._load_configured(public_pem, private_pem)
            logger.info(f"Successfully loaded configured RSA key pair with kid={key.kid}")
        else:
            if public_pem or private_pem:
                logger.warning("Only one half of the RSA key pair is configured; ignoring it")
            logger.warning("RSA keys not configured, generating new keys")
            key = self._generate()
        self._active = key
        return key

    # ─── Access ───────────────────────────────────────────────────────────────
    def active_key(self) -> SigningKey:
        key = self._active
        if key is None:
            raise KeyGenerationError("Signing key store has not been initialized")
        return key

    def public_key_set(self) -> dict:
        """JWKS document containing only the active public key."""
        return {"keys": [self.active_key().public_jwk()]}

    # ─── Rotation ─────────────────────────────────────────────────────────────
    def rotate(self) -> SigningKey:
        """
        Generate a fresh key and make it active.
        On failure the previous key stays active and KeyGenerationError is raised.
        """
        key = self._generate()
        previous = self._active
        self._active = key
        logger.info(
            f"Rotated signing key: {previous.kid if previous else None} -> {key.kid}"
        )
        return key

    # ─── Internals ────────────────────────────────────────────────────────────
    def _generate(self) -> SigningKey:
        try:
            logger.info(f"Generating new {self._key_size}-bit RSA key pair")
            private_key = rsa.generate_private_key(public_exponent=65537, key_size=self._key_size)
            private_pem, public_pem = _to_pem(private_key)
        except Exception as e:
            logger.exception("Failed to generate RSA key pair")
            raise KeyGenerationError("Key generation failed") from e
        key = SigningKey(
            kid=_new_kid(),
            private_pem=private_pem,
            public_pem=public_pem,
            created_at=datetime.now(timezone.utc),
        )
        logger.info(f"Generated RSA key pair with kid={key.kid}")
        return key

    def _load_configured(self, public_pem: str, private_pem: str) -> SigningKey:
        try:
            private_key = serialization.load_pem_private_key(private_pem.encode("utf-8"), password=None)
            public_key = serialization.load_pem_public_key(public_pem.encode("utf-8"))
        except (ValueError, TypeError) as e:
            raise KeyGenerationError("Configured RSA key pair could not be parsed") from e

        if not isinstance(private_key, rsa.RSAPrivateKey) or not isinstance(public_key, rsa.RSAPublicKey):
            raise KeyGenerationError("Configured key pair is not RSA")
        if private_key.public_key().public_numbers() != public_key.public_numbers():
            raise KeyGenerationError("Configured RSA public key does not match the private key")

        private_pem, public_pem = _to_pem(private_key)
        return SigningKey(
            kid=_new_kid(),
            private_pem=private_pem,
            public_pem=public_pem,
            created_at=datetime.now(timezone.utc),
        )
