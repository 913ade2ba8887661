"""Request logging and structlog setup.

One ``request_completed`` line per request carrying method, path, status,
duration_ms, user_id (decoded from the session, if any) and request_id;
``request_error`` instead when the handler raises.
The request id is taken from an incoming X-Request-ID header or minted
here, echoed back on the response, and bound to structlog's contextvars
so every domain log line written while serving the request carries it.

Production renders JSON; every other environment gets the console renderer.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.config import Environment, get_settings
from src.app.core.security import decode_session_user_id, session_token_from_request

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Probes and scrapes are logged at debug so they do not drown real traffic.
QUIET_PATHS = frozenset({"/health", "/health/ready", "/metrics"})


def _renderer(environment: Environment):
    if environment == Environment.production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_structlog() -> None:
    """Route structlog through stdlib logging at LOG_LEVEL."""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(settings.ENVIRONMENT),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


def _emitter(path: str, status_code: int):
    if status_code >= 500:
        return logger.error
    if status_code >= 400:
        return logger.warning
    if path in QUIET_PATHS:
        return logger.debug
    return logger.info


class LoggingMiddleware(BaseHTTPMiddleware):
    """Times each request and logs it with the caller's identity."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        user_id = decode_session_user_id(session_token_from_request(request))
        path = request.url.path
        started = time.monotonic()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, user_id=user_id)

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_error",
                method=request.method,
                path=path,
                duration_ms=_elapsed_ms(started),
                exc_info=True,
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        _emitter(path, response.status_code)(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        return response
