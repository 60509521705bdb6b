"""
Domain error -> HTTP response mapping.

Every ``FreightError`` is rendered as ``{"code", "detail", "retryable"}``
(plus the quota fields for ``QuotaExceeded``).  Only ``Conflict`` is marked
retryable.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.domain.errors import (
    Conflict,
    FreightError,
    InvalidState,
    NotFound,
    QuotaExceeded,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: list[tuple[type[FreightError], int]] = [
    (NotFound, 404),
    (Unauthorized, 403),
    (QuotaExceeded, 402),
    (Conflict, 409),
    (InvalidState, 409),
    (ValidationError, 422),
]


def status_for(exc: FreightError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def freight_error_handler(request: Request, exc: FreightError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "%s %s -> %d %s: %s",
        request.method,
        request.url.path,
        status_code,
        exc.code,
        exc.reason,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FreightError, freight_error_handler)
