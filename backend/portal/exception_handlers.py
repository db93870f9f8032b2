"""Map portal errors onto HTTP responses.

Error messages are returned verbatim so views can show them next to the form
that triggered them.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from portal.errors import (
    EmailAlreadyRegistered,
    InvalidCredentials,
    NetworkError,
    NotAuthenticated,
    PortalError,
    RecordNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[PortalError], int] = {
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    NotAuthenticated: status.HTTP_401_UNAUTHORIZED,
    EmailAlreadyRegistered: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_CONTENT,
    RecordNotFound: status.HTTP_404_NOT_FOUND,
    NetworkError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(error: PortalError) -> int:
    for error_type, code in _STATUS_CODES.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, portal_error_handler)
