from fastapi import HTTPException, status


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES: machine-readable constants for frontend switch/case
# ═══════════════════════════════════════════════════════════════════════════════
class ErrorCode:
    VALIDATION_ERROR        = "VALIDATION_ERROR"
    UNAUTHORIZED            = "UNAUTHORIZED"
    FORBIDDEN               = "FORBIDDEN"
    INTERNAL_SERVER_ERROR   = "INTERNAL_SERVER_ERROR"


# ═══════════════════════════════════════════════════════════════════════════════
# CREDENTIAL FAILURE KINDS: server-side only, never sent to the client
# ═══════════════════════════════════════════════════════════════════════════════
class CredentialFailure:
    MISSING_CREDENTIALS     = "MISSING_CREDENTIALS"
    INVALID_FORMAT          = "INVALID_FORMAT"
    TOKEN_NOT_FOUND         = "TOKEN_NOT_FOUND"
    TOKEN_EXPIRED           = "TOKEN_EXPIRED"
    REUSE_DETECTED          = "REUSE_DETECTED"
    SIGNATURE_INVALID       = "SIGNATURE_INVALID"
    MALFORMED_TOKEN         = "MALFORMED_TOKEN"
    ACCOUNT_NOT_FOUND       = "ACCOUNT_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════════════════════════
class AppException(HTTPException):
    """
    Base exception for all application-level errors.
    Carries a machine-readable error_code for frontend handling.
    """
    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str,
        details: list | None = None,
        field: str | None = None,
    ):
        super().__init__(status_code=status_code, detail={
            "message": message,
            "error": {
                "code": error_code,
                "details": details,
                "field": field,
            }
        })


# ═══════════════════════════════════════════════════════════════════════════════
# CREDENTIAL EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════════
class CredentialException(AppException):
    """
    Any rejected access or refresh token.

    Every subclass renders as the same generic 401 so a client cannot tell an
    unknown token from a revoked or expired one. The specific kind lives in
    `kind` / `reason` and is only logged server-side.
    """
    kind = CredentialFailure.SIGNATURE_INVALID

    def __init__(self, reason: str | None = None):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid or expired credentials",
            ErrorCode.UNAUTHORIZED,
        )
        self.headers = {"WWW-Authenticate": "Bearer"}
        self.reason = reason or self.kind


class MissingCredentialsException(CredentialException):
    kind = CredentialFailure.MISSING_CREDENTIALS


class InvalidFormatException(CredentialException):
    kind = CredentialFailure.INVALID_FORMAT


class TokenNotFoundException(CredentialException):
    kind = CredentialFailure.TOKEN_NOT_FOUND


class TokenExpiredException(CredentialException):
    kind = CredentialFailure.TOKEN_EXPIRED


class RefreshTokenExpiredException(TokenExpiredException):
    pass


class ReuseDetectedException(CredentialException):
    kind = CredentialFailure.REUSE_DETECTED


class SignatureInvalidException(CredentialException):
    kind = CredentialFailure.SIGNATURE_INVALID


class MalformedTokenException(CredentialException):
    kind = CredentialFailure.MALFORMED_TOKEN


class AccountNotFoundException(CredentialException):
    kind = CredentialFailure.ACCOUNT_NOT_FOUND


# ═══════════════════════════════════════════════════════════════════════════════
# OTHER EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

class ForbiddenException(AppException):
    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(status.HTTP_403_FORBIDDEN, message, ErrorCode.FORBIDDEN)


class KeyGenerationError(Exception):
    """
    Signing key could not be generated or loaded.
    Fatal at startup; logged and retried by the rotation scheduler.
    """
