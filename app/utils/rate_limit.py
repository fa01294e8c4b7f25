"""
Fixed-window rate limiter keyed per user and action.

State lives on the limiter instance (not at module level) so each app, and
each test, gets its own counters and clock. Expired windows are swept from
``hit`` at most once per window, so the key map stays bounded by the keys
active in the last two windows.
"""
import threading
import time
from typing import Callable, Dict, Tuple

from app.errors import RateLimited


class RateLimiter:
    def __init__(self, max_requests: int = 5, window_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + window_seconds

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def hit(self, key: str) -> bool:
        """Record one request. Returns True when ``key`` is over the limit."""
        now = self.clock()
        with self._lock:
            if now >= self._next_sweep:
                self._drop_expired(now)
                self._next_sweep = now + self.window_seconds

            entry = self._entries.get(key)
            if entry is None or now > entry[1]:
                self._entries[key] = (1, now + self.window_seconds)
                return False
            count, reset_at = entry
            if count >= self.max_requests:
                return True
            self._entries[key] = (count + 1, reset_at)
            return False

    def check(self, key: str):
        """Like ``hit`` but raises ``RateLimited`` instead of returning True."""
        if self.hit(key):
            raise RateLimited(self.reset_in(key))

    def reset_in(self, key: str) -> float:
        """Seconds until ``key``'s window resets, 0 if it has no live window."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return 0.0
        return max(0.0, entry[1] - self.clock())

    def count(self, key: str) -> int:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or self.clock() > entry[1]:
            return 0
        return entry[0]

    def clear(self, key: str):
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._drop_expired(self.clock())

    def _drop_expired(self, now: float) -> int:
        expired = [k for k, (_, reset_at) in self._entries.items() if now > reset_at]
        for k in expired:
            del self._entries[k]
        return len(expired)
