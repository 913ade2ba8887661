"""Rate limiting middleware.

Routes /api/auth/* through the strict "auth" bucket config and every
other /api/* path through the "api" config. Non-API paths (health,
metrics, docs) are not limited.

Rejected requests get a 429 JSON body with a Retry-After header; every
limited response carries X-RateLimit-Limit / X-RateLimit-Remaining.
"""

from __future__ import annotations

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.core.rate_limit import (
    RATE_LIMIT_CONFIGS,
    TokenBucketLimiter,
    build_rate_limit_key,
)
from src.app.core.security import decode_session_user_id, session_token_from_request

logger = structlog.get_logger(__name__)

SWEEP_EVERY_REQUESTS = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token-bucket limiter keyed by client IP, user, method and path."""

    def __init__(self, app, limiters: dict[str, TokenBucketLimiter] | None = None):
        super().__init__(app)
        self._limiters = limiters or {
            name: TokenBucketLimiter(config=config)
            for name, config in RATE_LIMIT_CONFIGS.items()
        }
        self._seen = 0

    def _limiter_for(self, path: str) -> TokenBucketLimiter | None:
        if path.startswith("/api/auth"):
            return self._limiters.get("auth")
        if path.startswith("/api/"):
            return self._limiters.get("api")
        return None

    def _sweep(self) -> None:
        self._seen += 1
        if self._seen % SWEEP_EVERY_REQUESTS == 0:
            removed = sum(limiter.cleanup() for limiter in self._limiters.values())
            if removed:
                logger.debug("rate_limit.buckets_swept", removed=removed)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limiter = self._limiter_for(request.url.path)
        if limiter is None:
            return await call_next(request)

        self._sweep()

        ip = request.client.host if request.client else "unknown"
        user_id = decode_session_user_id(session_token_from_request(request))
        key = build_rate_limit_key(ip, request.method, request.url.path, user_id)
        result = limiter.consume(key)

        if not result.allowed:
            logger.warning(
                "rate_limit.exceeded",
                key=key,
                retry_after=result.retry_after,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many requests, please try again later.",
                    "retry_after": result.retry_after,
                },
                headers={
                    "Retry-After": str(result.retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response
