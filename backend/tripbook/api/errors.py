"""
Maps booking-core errors to HTTP responses.

Bodies keep FastAPI's {"detail": ...} shape so clients see the same format as
for HTTPException.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tripbook.core.exceptions import (
    BookingCoreError,
    BookingValidationError,
    ConflictError,
    NotFoundError,
)
from tripbook.core.logging import get_logger

logger = get_logger(__name__)

_STATUS_CODES = {
    BookingValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def status_code_for(exc: BookingCoreError) -> int:
    for error_type, code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def booking_core_error_handler(request: Request, exc: BookingCoreError) -> JSONResponse:
    code = status_code_for(exc)
    logger.info(
        "request_rejected",
        error_type=type(exc).__name__,
        status_code=code,
        detail=exc.detail,
    )
    return JSONResponse(status_code=code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingCoreError, booking_core_error_handler)
