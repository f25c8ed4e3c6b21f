"""Fixed-window rate limiter, keyed by client identifier.

Each identifier gets max_requests per window_ms. The window starts at the
identifier's first request and resets wholesale when it elapses, so a
burst straddling a window boundary can admit up to 2 x max_requests. That
is the fixed-window shape, kept on purpose.

Memory stays bounded by the same hybrid expiry as the memory backend: a
full sweep at most once per cleanup interval, plus lazy eviction of the
key being checked.

Process-local and synchronous. One threading.Lock guards the map; no
other component's locks are ever taken.

Usage:
    from roomstate.security.ratelimit import RateLimiter

    limiter = RateLimiter(max_requests=30, window_ms=60_000)
    info = limiter.check("203.0.113.7")
    if not info.allowed:
        raise RateLimited(info.retry_after)
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: int


@dataclass(frozen=True)
class RateLimitInfo:
    """Outcome of one check. reset_at is epoch ms; retry_after is seconds."""

    allowed: bool
    remaining: int
    limit: int
    reset_at: int
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        """Standard X-RateLimit-* headers, plus Retry-After when blocked."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at // 1000),
        }
        if not self.allowed and self.retry_after:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """Per-identifier fixed-window request counter."""

    def __init__(
        self,
        max_requests: int = 30,
        window_ms: int = 60_000,
        *,
        cleanup_interval_ms: int = 60_000,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        """Initialises an empty limiter.

        Args:
            max_requests: Requests allowed per window. Must be positive.
            window_ms: Window length in milliseconds. Must be positive.
            cleanup_interval_ms: Minimum time between full expiry sweeps.
            clock: Returns the current time in epoch milliseconds.

        Raises:
            ValueError: If max_requests or window_ms is not positive.
        """
        if max_requests < 1 or window_ms < 1:
            raise ValueError("max_requests and window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._cleanup_interval_ms = cleanup_interval_ms
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    @property
    def size(self) -> int:
        """Number of tracked identifiers."""
        return len(self._entries)

    def check(self, identifier: str) -> RateLimitInfo:
        """Counts one request for identifier and says whether it is allowed."""
        with self._lock:
            now = self._clock()

            if now - self._last_cleanup > self._cleanup_interval_ms:
                self._cleanup(now)
                self._last_cleanup = now

            entry = self._entries.get(identifier)
            if entry is not None and now > entry.reset_at:
                del self._entries[identifier]
                entry = None

            if entry is None:
                reset_at = now + self.window_ms
                self._entries[identifier] = RateLimitEntry(count=1, reset_at=reset_at)
                return RateLimitInfo(
                    allowed=True,
                    remaining=self.max_requests - 1,
                    limit=self.max_requests,
                    reset_at=reset_at,
                )

            if entry.count >= self.max_requests:
                retry_after = math.ceil((entry.reset_at - now) / 1000)
                return RateLimitInfo(
                    allowed=False,
                    remaining=0,
                    limit=self.max_requests,
                    reset_at=entry.reset_at,
                    retry_after=max(retry_after, 1),
                )

            entry.count += 1
            return RateLimitInfo(
                allowed=True,
                remaining=self.max_requests - entry.count,
                limit=self.max_requests,
                reset_at=entry.reset_at,
            )

    def _cleanup(self, now: int) -> None:
        expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
        for key in expired:
            del self._entries[key]

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
