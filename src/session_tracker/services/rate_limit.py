"""Fixed-window rate limiting with an injected counter store."""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from session_tracker.domain.errors import RateLimited
from session_tracker.services.sessions import utcnow


@dataclass
class WindowCounter:
    count: int
    resets_at: datetime


class RateLimitStore(Protocol):
    """Counter storage for rate limit windows."""

    def get(self, key: str) -> WindowCounter | None:
        """Return the counter for a key, if present."""

    def set(self, key: str, counter: WindowCounter) -> None:
        """Store the counter for a key."""

    def sweep(self, now: datetime) -> int:
        """Drop counters whose window has ended; return how many."""

    def clear(self) -> None:
        """Drop every counter."""


@dataclass
class InMemoryRateLimitStore(RateLimitStore):
    """Process-local counter store, created once per app instance."""

    _counters: dict[str, WindowCounter] = field(default_factory=dict)

    def get(self, key: str) -> WindowCounter | None:
        return self._counters.get(key)

    def set(self, key: str, counter: WindowCounter) -> None:
        self._counters[key] = counter

    def sweep(self, now: datetime) -> int:
        expired = [key for key, item in self._counters.items() if item.resets_at <= now]
        for key in expired:
            self._counters.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        self._counters.clear()

    def __len__(self) -> int:
        return len(self._counters)


@dataclass
class RateLimiter:
    """Allows ``max_requests`` per client within each window."""

    store: RateLimitStore
    max_requests: int
    window: timedelta
    clock: Callable[[], datetime] = field(default=utcnow)

    def hit(self, client_key: str) -> int:
        """Count a request; return remaining quota or raise RateLimited."""
        now = self.clock()
        counter = self.store.get(client_key)
        if counter is None or counter.resets_at <= now:
            counter = WindowCounter(count=0, resets_at=now + self.window)
        if counter.count >= self.max_requests:
            retry_after = math.ceil((counter.resets_at - now).total_seconds())
            raise RateLimited(retry_after=max(retry_after, 1))
        counter.count += 1
        self.store.set(client_key, counter)
        return self.max_requests - counter.count

    def sweep(self) -> int:
        """Drop finished windows from the store."""
        return self.store.sweep(self.clock())


def client_key(ip_address: str, user_agent: str | None) -> str:
    """Identify a client by address and a user agent prefix."""
    return f"{ip_address}:{(user_agent or 'unknown')[:50]}"
