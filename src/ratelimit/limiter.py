"""Fixed-window rate limiting behind a swappable counter store.

The limiter only talks to a :class:`RateLimitStore` (``check`` and
``increment``), so a multi-process deployment can back it with a shared
store while tests use the in-memory one with a fake clock.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True)
class WindowState:
    count: int
    reset_at: float


class RateLimitStore(Protocol):
    def check(self, key: str, now: float) -> WindowState | None:
        """Current window for ``key``, or None when there is no live window."""
        ...

    def increment(self, key: str, now: float, window_seconds: float) -> WindowState:
        """Count one hit, opening a new window when the old one has expired."""
        ...


class InMemoryRateLimitStore:
    def __init__(self):
        self._windows: dict[str, WindowState] = {}
        self._lock = threading.Lock()

    def check(self, key: str, now: float) -> WindowState | None:
        with self._lock:
            state = self._windows.get(key)
            if state is not None and now >= state.reset_at:
                del self._windows[key]
                return None
            return state

    def increment(self, key: str, now: float, window_seconds: float) -> WindowState:
        with self._lock:
            state = self._windows.get(key)
            if state is None or now >= state.reset_at:
                state = WindowState(count=1, reset_at=now + window_seconds)
            else:
                state = WindowState(count=state.count + 1, reset_at=state.reset_at)
            self._windows[key] = state
            return state

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class FixedWindowRateLimiter:
    DEFAULT_WINDOW_SECONDS = 60
    DEFAULT_MAX_REQUESTS = 60

    def __init__(
        self,
        store: RateLimitStore | None = None,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or InMemoryRateLimitStore()
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

    def hit(self, key: str) -> RateLimitResult:
        """Count a request for ``key`` unless the window is already exhausted."""
        now = self._clock()
        state = self.store.check(key, now)
        if state is not None and state.count >= self.max_requests:
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_at=state.reset_at,
                retry_after=max(1, math.ceil(state.reset_at - now)),
            )
        state = self.store.increment(key, now, self.window_seconds)
        return RateLimitResult(
            allowed=True,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - state.count),
            reset_at=state.reset_at,
        )
