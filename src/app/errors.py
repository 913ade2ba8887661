"""Domain exceptions and their HTTP mapping.

Services raise these instead of HTTPException so they stay usable outside
a request. register_exception_handlers() turns them into the standard
``{"detail": ...}`` JSON error body.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class DealflowError(Exception):
    """Base class for errors raised by domain services."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(DealflowError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DealflowError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(DealflowError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DealflowError):
    status_code = status.HTTP_409_CONFLICT


async def _dealflow_error_handler(request: Request, exc: DealflowError) -> JSONResponse:
    logger.info(
        "domain_error",
        error=type(exc).__name__,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain error handler to ``app``."""
    app.add_exception_handler(DealflowError, _dealflow_error_handler)
