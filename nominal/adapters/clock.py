from __future__ import annotations

import threading
import time


class SystemClock:
    """Wall clock in whole seconds, clamped so it never runs backwards."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> int:
        t = int(time.time())
        with self._lock:
            if t < self._last:
                return self._last
            self._last = t
            return t


class ManualClock:
    """Deterministic clock for tests and scripted runs."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._t = int(start)

    def now(self) -> int:
        return self._t

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._t += int(seconds)
        return self._t

    def set(self, t: int) -> None:
        if t < self._t:
            raise ValueError("clock cannot move backwards")
        self._t = int(t)


__all__ = ["SystemClock", "ManualClock"]
