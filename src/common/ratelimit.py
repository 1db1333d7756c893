"""Fixed-window request limiting with pluggable window storage.

The limiter itself holds no state: counters live in a ``RateLimitStore``. The
cache-backed store shares windows between every process that talks to the same
cache (Redis in production); the in-memory store is for single-process use.
"""

import math
import threading
import time
import typing as t
from abc import ABC, abstractmethod

import structlog
from django.conf import settings
from django.core.cache import BaseCache, cache
from django.utils.translation import gettext as _

logger = structlog.get_logger(__name__)


class RateLimitWindow(t.NamedTuple):
    count: int
    reset_at: float


class RateLimitStatus(t.NamedTuple):
    limit: int
    remaining: int
    reset_at: float


class RateLimitExceededError(Exception):
    """Raised when a key has used up its quota for the current window."""

    def __init__(self, retry_after: int, limit: int) -> None:
        """Store the number of seconds until the window resets."""
        self.retry_after = retry_after
        self.limit = limit
        super().__init__(_("Rate limit exceeded. Retry in %(seconds)s seconds.") % {"seconds": retry_after})


def window_bounds(now: float, window_seconds: int) -> tuple[int, float]:
    """Return the index of the window ``now`` falls in and the time it resets.

    Windows are aligned to the epoch, so every process agrees on where they start.
    """
    index = math.floor(now / window_seconds)
    return index, float((index + 1) * window_seconds)


class RateLimitStore(ABC):
    @abstractmethod
    def hit(self, key: str, window_seconds: int, now: float) -> RateLimitWindow:
        """Count one request for ``key`` in the window ``now`` falls in and return that window."""


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local windows. Quotas multiply with the number of processes."""

    def __init__(self) -> None:
        """Initialize the window map."""
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: int, now: float) -> RateLimitWindow:
        """Count a request in process memory."""
        _, reset_at = window_bounds(now, window_seconds)
        with self._lock:
            current = self._windows.get(key)
            if current is None or current.reset_at != reset_at:
                current = RateLimitWindow(count=1, reset_at=reset_at)
            else:
                current = RateLimitWindow(count=current.count + 1, reset_at=reset_at)
            self._windows[key] = current
            return current

    def clear(self) -> None:
        """Forget every window."""
        with self._lock:
            self._windows.clear()


class CacheRateLimitStore(RateLimitStore):
    """Windows kept in a Django cache, one counter per key and window.

    The counter is created with ``add`` and bumped with ``incr``, both atomic on
    Redis, so concurrent requests never reset or lose each other's counts.
    """

    def __init__(self, backend: BaseCache | None = None, prefix: str = "ratelimit") -> None:
        """Bind the store to a cache backend (the default cache if omitted)."""
        self.backend = backend or cache
        self.prefix = prefix

    def counter_key(self, key: str, window_index: int) -> str:
        return f"{self.prefix}:{key}:{window_index}"

    def hit(self, key: str, window_seconds: int, now: float) -> RateLimitWindow:
        """Count a request in the shared cache."""
        index, reset_at = window_bounds(now, window_seconds)
        count_key = self.counter_key(key, index)
        timeout = math.ceil(reset_at - now) + 1

        self.backend.add(count_key, 0, timeout=timeout)
        try:
            count = self.backend.incr(count_key)
        except ValueError:
            # The counter expired between ``add`` and ``incr``.
            self.backend.add(count_key, 0, timeout=timeout)
            count = self.backend.incr(count_key)
        return RateLimitWindow(count=count, reset_at=reset_at)


class FixedWindowRateLimiter:
    def __init__(
        self,
        store: RateLimitStore,
        *,
        limit: int,
        window_seconds: int,
        clock: t.Callable[[], float] | None = None,
    ) -> None:
        """Configure the limiter.

        Args:
            store: Where window counters are kept.
            limit: Requests admitted per window.
            window_seconds: Window length.
            clock: Returns the current time in epoch seconds; defaults to ``time.time``.
        """
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key: str) -> RateLimitStatus:
        """Count one request for ``key``.

        Returns:
            The remaining quota when the request is admitted.

        Raises:
            RateLimitExceededError: When the window's quota is already used up.
        """
        now = self.clock() if self.clock else time.time()
        window = self.store.hit(key, self.window_seconds, now)
        if window.count > self.limit:
            retry_after = max(1, math.ceil(window.reset_at - now))
            logger.warning("rate_limit_exceeded", key=key, limit=self.limit, retry_after=retry_after)
            raise RateLimitExceededError(retry_after=retry_after, limit=self.limit)
        return RateLimitStatus(limit=self.limit, remaining=self.limit - window.count, reset_at=window.reset_at)


def get_events_token_rate_limiter() -> FixedWindowRateLimiter:
    """Build the limiter applied to EventsToken-authenticated requests."""
    return FixedWindowRateLimiter(
        CacheRateLimitStore(prefix="events-token"),
        limit=settings.EVENTS_TOKEN_RATE_LIMIT,
        window_seconds=settings.EVENTS_TOKEN_RATE_WINDOW_SECONDS,
    )
