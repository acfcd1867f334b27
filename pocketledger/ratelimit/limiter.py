"""
Fixed-Window Rate Limiter

Each key gets a counter and a reset time. The first request after the
reset time opens a fresh window; requests beyond `max_requests` inside a
window are rejected until it ends.

DESIGN DECISION: Fixed windows, not sliding ones. A client can send
`max_requests` at the end of one window and again at the start of the next,
so up to twice the limit can land in a short burst around the boundary.
That is accepted in exchange for O(1) state per key.

DESIGN DECISION: Expired windows are swept opportunistically: each check
has a small chance of cleaning the whole store. There is no background
thread to start or stop.
"""

import math
import random
import threading
import time
from typing import Callable, Optional

import structlog

from pocketledger.ratelimit.models import (
    RateLimitConfig,
    RateLimitEntry,
    RateLimitResult,
)
from pocketledger.ratelimit.store import InMemoryRateLimitStore, RateLimitStore


logger = structlog.get_logger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Counts requests per key against a RateLimitConfig.

    Store, clock (epoch milliseconds) and random source are injectable so
    tests can drive time explicitly.

    Usage:
        limiter = RateLimiter()
        result = limiter.check(user_id, RATE_LIMITS["CHAT_API"])
        if not result.success:
            ...  # respond 429 with result.headers()
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[Callable[[], float]] = None,
        cleanup_probability: float = 0.01,
    ):
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock or _epoch_millis
        self._rng = rng or random.random
        self._cleanup_probability = cleanup_probability
        # Streamlit serves each session on its own thread
        self._lock = threading.Lock()

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count one request for `identifier` and report whether it is allowed.

        Rejected requests do not increase the counter.
        """
        key = config.key_for(identifier)

        with self._lock:
            now = self._clock()

            if self._rng() < self._cleanup_probability:
                self._sweep(now)

            entry = self._store.get(key)
            if entry is None or entry.reset_time < now:
                entry = RateLimitEntry(requests=0, reset_time=now + config.window_ms)

            if entry.requests >= config.max_requests:
                self._store.set(key, entry)
                retry_after = max(0, math.ceil((entry.reset_time - now) / 1000))
                logger.info(
                    "rate_limit_rejected",
                    key=key,
                    limit=config.max_requests,
                    retry_after=retry_after,
                )
                return RateLimitResult(
                    success=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_time=entry.reset_time,
                    retry_after=retry_after,
                )

            entry = RateLimitEntry(
                requests=entry.requests + 1,
                reset_time=entry.reset_time,
            )
            self._store.set(key, entry)

        return RateLimitResult(
            success=True,
            limit=config.max_requests,
            remaining=config.max_requests - entry.requests,
            reset_time=entry.reset_time,
        )

    def sweep(self, now: Optional[int] = None) -> int:
        """Delete every expired window. Returns how many were removed."""
        with self._lock:
            return self._sweep(self._clock() if now is None else now)

    def _sweep(self, now: int) -> int:
        removed = 0
        for key, entry in self._store.items():
            if entry.reset_time < now:
                self._store.delete(key)
                removed += 1
        if removed:
            logger.debug("rate_limit_sweep", removed=removed)
        return removed


RATE_LIMITS: dict[str, RateLimitConfig] = {
    # Chat: 10 requests per hour per user
    "CHAT_API": RateLimitConfig(
        max_requests=10,
        window_ms=HOUR_MS,
        key_generator=lambda user_id: f"chat:{user_id}",
    ),
    "CHAT_API_STRICT": RateLimitConfig(
        max_requests=10,
        window_ms=5 * MINUTE_MS,
        key_generator=lambda user_id: f"chat:strict:{user_id}",
    ),
    "GENERAL_API": RateLimitConfig(
        max_requests=100,
        window_ms=HOUR_MS,
    ),
    "FILE_UPLOAD": RateLimitConfig(
        max_requests=20,
        window_ms=HOUR_MS,
        key_generator=lambda user_id: f"upload:{user_id}",
    ),
}
