import threading
import time
from collections import deque

SWEEP_INTERVAL_SECONDS = 60.0


class RateLimiter:
    """In-process sliding-window limiter keyed by caller.

    State lives in this process only and resets on restart; it backs up the
    edge rate limit rather than replacing it. Keys whose window has fully
    elapsed are dropped on a periodic sweep.
    """

    def __init__(self, clock=time.monotonic, sweep_interval: float = SWEEP_INTERVAL_SECONDS):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._hits: dict[str, deque[float]] = {}
        self._windows: dict[str, float] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: float) -> bool:
        """Record a request for `key`; False once `limit` is exceeded in the window."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._windows[key] = window_seconds
            while hits and now - hits[0] >= window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return False
            hits.append(now)
            return True

    def _sweep(self, now: float) -> None:
        stale = [
            key
            for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= self._windows[key]
        ]
        for key in stale:
            del self._hits[key]
            del self._windows[key]
        self._last_sweep = now

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._windows.clear()


rate_limiter = RateLimiter()
