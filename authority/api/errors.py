"""AuthError → HTTP response mapping.

Every AuthError becomes ``{"error": <kind>}`` with a status chosen by its
error class. Internal-class kinds carry no detail beyond the kind name.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from authority.errors import AuthError, ErrorClass, ErrorKind
from authority.utils.logger import get_logger

logger = get_logger(__name__)

ERROR_CLASS_STATUS: dict[ErrorClass, int] = {
    ErrorClass.NOT_FOUND: 404,
    ErrorClass.EXPIRED: 410,
    ErrorClass.CONFLICT: 409,
    ErrorClass.UNAUTHORIZED: 401,
    ErrorClass.RATE_LIMITED: 429,
    ErrorClass.VALIDATION: 400,
    ErrorClass.EXTERNAL: 502,
    ErrorClass.INTERNAL: 500,
}

# Transient delivery failure: the caller may retry.
_KIND_STATUS_OVERRIDES: dict[ErrorKind, int] = {
    ErrorKind.NOTIFICATION_UNAVAILABLE: 503,
}


def status_for(error: AuthError) -> int:
    return _KIND_STATUS_OVERRIDES.get(error.kind, ERROR_CLASS_STATUS[error.error_class])


async def auth_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, AuthError)
    status_code = status_for(exc)
    logger.info(
        "auth_error",
        kind=exc.kind.value,
        status_code=status_code,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=status_code, content={"error": exc.kind.value})
