import logging
import traceback
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from app.schemas.common import error_response
from app.utils.exceptions import AppException, CredentialException, CredentialFailure, ErrorCode

logger = logging.getLogger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle all AppException subclasses (our custom exceptions)."""
    detail = exc.detail
    error = detail.get("error") or {}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            detail.get("message", "An error occurred"),
            error.get("code", ErrorCode.INTERNAL_SERVER_ERROR),
            details=error.get("details"),
            field=error.get("field"),
        ),
        headers=exc.headers,
    )


async def credential_exception_handler(request: Request, exc: CredentialException) -> JSONResponse:
    """
    Rejected tokens. The specific failure kind is logged here and nowhere
    else; the client only ever sees the generic 401 body.
    """
    log = logger.error if exc.kind == CredentialFailure.REUSE_DETECTED else logger.warning
    log(f"Credential rejected on {request.method} {request.url.path} [{exc.kind}]: {exc.reason}")
    return await app_exception_handler(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Request body failed pydantic validation (422).
    Each error becomes a {field, message} entry in error.details.
    """
    details = []
    for error in exc.errors():
        # loc is a tuple like ("body", "refreshToken")
        loc = error.get("loc", [])
        field = ".".join(str(l) for l in loc if l != "body") if loc else "unknown"
        details.append({
            "field": field or "body",
            "message": error.get("msg", "Invalid value"),
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(
            "Validation error. Please check your input.",
            ErrorCode.VALIDATION_ERROR,
            details=details,
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions, e.g. a failed manual key rotation.
    Logs the full traceback, returns a safe 500 response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url}\n"
        f"{''.join(traceback.format_exception(exc))}"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(
            "An unexpected error occurred. Please try again later.",
            ErrorCode.INTERNAL_SERVER_ERROR,
        ),
    )
