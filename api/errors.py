"""Maps inventory errors to HTTP responses"""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from domain.exceptions import (
    InventoryError, ValidationError, NotFound, ConflictError, InventoryInUse,
    NotEligible, AlreadyBound, ConcurrentModification
)
from api.schemas import ErrorResponse

logger = logging.getLogger(__name__)

# Checked in order, so subclasses come before their bases
STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InventoryInUse, status.HTTP_409_CONFLICT),
    (AlreadyBound, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (NotEligible, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def status_for(error: InventoryError) -> int:
    for error_class, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_class):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def error_body(error: InventoryError) -> dict:
    return ErrorResponse(
        error=error.code,
        detail=error.message,
        recoverable=error.recoverable,
        details=error.details
    ).model_dump()


async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info("%s %s -> %d %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(status_code=status_code, content=error_body(exc))
