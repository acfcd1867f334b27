"""Fixed-window rate limiting for the chat API and receipt uploads."""

from pocketledger.ratelimit.limiter import RATE_LIMITS, RateLimiter
from pocketledger.ratelimit.models import (
    RateLimitConfig,
    RateLimitEntry,
    RateLimitResult,
)
from pocketledger.ratelimit.store import InMemoryRateLimitStore, RateLimitStore

__all__ = [
    "RATE_LIMITS",
    "InMemoryRateLimitStore",
    "RateLimitConfig",
    "RateLimitEntry",
    "RateLimitResult",
    "RateLimitStore",
    "RateLimiter",
]
