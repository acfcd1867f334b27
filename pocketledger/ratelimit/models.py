"""
Rate limit data types.

All times are integer milliseconds since the epoch, `retry_after` is in
whole seconds.
"""

from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field


class RateLimitConfig(BaseModel):
    """
    A rate limit policy: at most `max_requests` per fixed window.

    `key_generator` maps the caller's identifier to the store key, which
    lets several policies share one store without colliding.
    """
    model_config = ConfigDict(frozen=True)

    max_requests: int = Field(..., ge=1)
    window_ms: int = Field(..., ge=1)
    key_generator: Optional[Callable[[str], str]] = None

    def key_for(self, identifier: str) -> str:
        if self.key_generator is None:
            return identifier
        return self.key_generator(identifier)


class RateLimitEntry(BaseModel):
    """Counter for one key in the current window."""

    requests: int = Field(default=0, ge=0)
    reset_time: int


class RateLimitResult(BaseModel):
    """Outcome of a single rate limit check."""
    model_config = ConfigDict(frozen=True)

    success: bool
    limit: int
    remaining: int = Field(..., ge=0)
    reset_time: int
    retry_after: Optional[int] = Field(default=None, ge=0)

    def headers(self) -> dict[str, str]:
        """
        HTTP headers describing this result.

        Retry-After is only sent on rejection and defaults to one minute
        when the wait is unknown.
        """
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }
        if not self.success:
            headers["Retry-After"] = (
                str(self.retry_after) if self.retry_after is not None else "60"
            )
        return headers

    def error_body(self, message: str = "Rate limit exceeded") -> dict:
        """JSON body of a 429 response."""
        return {
            "error": message,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
            "retryAfter": self.retry_after,
        }
