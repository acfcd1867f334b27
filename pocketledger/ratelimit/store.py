"""
Rate Limit Stores

DESIGN DECISION: The limiter talks to an abstract store so the in-process
dictionary can be replaced by a shared backend (Redis, a database table)
without touching the counting logic. The in-memory store is per process:
with N workers the effective limit is N times the configured one.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from pocketledger.ratelimit.models import RateLimitEntry


class RateLimitStore(ABC):
    """Key/value store of rate limit windows."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitEntry]:
        """Return the entry for a key, or None if there is none."""
        pass

    @abstractmethod
    def set(self, key: str, entry: RateLimitEntry) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        pass

    @abstractmethod
    def items(self) -> Iterator[tuple[str, RateLimitEntry]]:
        """Snapshot of all (key, entry) pairs."""
        pass

    def __len__(self) -> int:
        return sum(1 for _ in self.items())


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store backed by a dict."""

    def __init__(self):
        self._entries: dict[str, RateLimitEntry] = {}

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def items(self) -> Iterator[tuple[str, RateLimitEntry]]:
        # copy so callers may delete while iterating
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
