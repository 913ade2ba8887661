"""Token-bucket rate limiter.

Each key gets a bucket that starts full at ``burst_capacity`` tokens and
refills continuously at ``tokens_per_interval / interval_seconds`` tokens
per second, never exceeding the burst capacity. A request consumes one
token; an empty bucket means the request is rejected.

Buckets live in process memory, so limits apply per worker.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RateLimitConfig:
    tokens_per_interval: int
    interval_seconds: float
    burst_capacity: int

    @property
    def refill_rate(self) -> float:
        """Tokens added per second."""
        return self.tokens_per_interval / self.interval_seconds


RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    "standard": RateLimitConfig(tokens_per_interval=20, interval_seconds=60, burst_capacity=30),
    "auth": RateLimitConfig(tokens_per_interval=10, interval_seconds=300, burst_capacity=15),
    "api": RateLimitConfig(tokens_per_interval=100, interval_seconds=60, burst_capacity=150),
}


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int = 0


@dataclass
class TokenBucketLimiter:
    """In-memory token buckets keyed by client identity."""

    config: RateLimitConfig
    clock: Callable[[], float] = time.monotonic
    _buckets: dict[str, _Bucket] = field(default_factory=dict)

    def _refill(self, bucket: _Bucket, now: float) -> None:
        elapsed = now - bucket.last_refill
        if elapsed > 0:
            bucket.tokens = min(
                float(self.config.burst_capacity),
                bucket.tokens + elapsed * self.config.refill_rate,
            )
            bucket.last_refill = now

    def consume(self, key: str, tokens: int = 1) -> RateLimitResult:
        """Try to take ``tokens`` from the bucket for ``key``."""
        now = self.clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(tokens=float(self.config.burst_capacity), last_refill=now)
            self._buckets[key] = bucket
        else:
            self._refill(bucket, now)

        if bucket.tokens >= tokens:
            bucket.tokens -= tokens
            return RateLimitResult(
                allowed=True,
                limit=self.config.burst_capacity,
                remaining=int(bucket.tokens),
            )

        deficit = tokens - bucket.tokens
        return RateLimitResult(
            allowed=False,
            limit=self.config.burst_capacity,
            remaining=0,
            retry_after=max(1, math.ceil(deficit / self.config.refill_rate)),
        )

    def remaining(self, key: str) -> int:
        """Tokens currently available for ``key`` (full bucket if unseen)."""
        bucket = self._buckets.get(key)
        if bucket is None:
            return self.config.burst_capacity
        self._refill(bucket, self.clock())
        return int(bucket.tokens)

    def reset(self, key: str) -> None:
        self._buckets.pop(key, None)

    def cleanup(self) -> int:
        """Drop buckets idle for more than ten intervals. Returns count removed."""
        cutoff = self.clock() - self.config.interval_seconds * 10
        stale = [key for key, bucket in self._buckets.items() if bucket.last_refill < cutoff]
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._buckets)


def build_rate_limit_key(
    ip: str, method: str, path: str, user_id: str | None = None
) -> str:
    """Key format: ``ip[:user:<id>]:METHOD:path``."""
    key = ip
    if user_id:
        key += f":user:{user_id}"
    return f"{key}:{method}:{path}"
