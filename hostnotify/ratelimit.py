"""Fixed-window request counters used to throttle notification requests.

Counters live in process memory only. A restart resets every window and each
instance of the service counts on its own, so the effective limit under
horizontal scaling is ``limit * instances``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from .config import Settings


@dataclass
class RateCounter:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Count requests per key in discrete windows.

    ``allow`` never raises. Once a key is denied its counter stays put until the
    window elapses, so hammering a denied key keeps it denied.
    """

    def __init__(
        self,
        *,
        limit: int,
        window: float,
        max_keys: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1 or window <= 0:
            raise ValueError("limit must be >= 1 and window must be positive")
        self.limit = limit
        self.window = window
        self.max_keys = max_keys
        self._clock = clock
        self._entries: dict[str, RateCounter] = {}
        self._lock = threading.Lock()

    def allow(
        self, key: str, limit: int | None = None, window: float | None = None
    ) -> bool:
        limit = self.limit if limit is None else limit
        window = self.window if window is None else window
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_at:
                if entry is None and self.max_keys and len(self._entries) >= self.max_keys:
                    self._evict_expired(now)
                self._entries[key] = RateCounter(count=1, reset_at=now + window)
                return True
            if entry.count >= limit:
                return False
            entry.count += 1
            return True

    def _evict_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def prune(self, now: float | None = None) -> int:
        """Drop counters whose window has passed; returns how many were removed."""
        with self._lock:
            return self._evict_expired(self._clock() if now is None else now)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class RateLimiters:
    """In-process guards, pruned together.

    The host notification endpoint consults ``per_ip`` and ``per_reservation``
    only; ``per_event`` is kept for event-scoped callers and must never gate a
    per-reservation notification.
    """

    per_ip: FixedWindowRateLimiter
    per_reservation: FixedWindowRateLimiter
    per_event: FixedWindowRateLimiter

    @classmethod
    def from_settings(
        cls, settings: Settings, *, clock: Callable[[], float] = time.monotonic
    ) -> "RateLimiters":
        window = settings.rate_limit_window_seconds
        return cls(
            per_ip=FixedWindowRateLimiter(
                limit=settings.ip_rate_limit, window=window, clock=clock
            ),
            per_reservation=FixedWindowRateLimiter(
                limit=settings.reservation_rate_limit, window=window, clock=clock
            ),
            per_event=FixedWindowRateLimiter(
                limit=settings.event_rate_limit,
                window=settings.event_rate_window_seconds,
                max_keys=settings.event_rate_max_keys,
                clock=clock,
            ),
        )

    def prune(self) -> int:
        return sum(
            guard.prune()
            for guard in (self.per_ip, self.per_reservation, self.per_event)
        )
