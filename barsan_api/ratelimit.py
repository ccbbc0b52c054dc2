import threading
import time


class FixedWindowLimiter:
    """
    Per-key request counter over fixed windows of `window` seconds.

    Only the current window is kept: the first hit in a new window drops
    every count from the previous one.
    """

    def __init__(self, limit: int, window: int = 60, clock=time.time):
        self.limit = limit
        self.window = window
        self.clock = clock
        self._current = None
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        window = int(self.clock()) // self.window
        with self._lock:
            if window != self._current:
                self._current = window
                self._counts.clear()
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
        return count <= self.limit

    def __len__(self):
        with self._lock:
            return len(self._counts)
