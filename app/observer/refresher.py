"""
Rate-limited downstream refresh trigger.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class ThrottledRefresher:
    """
    Calls `refresh` when the imported count grew, at most once per
    `min_interval_seconds`. `flush` always refreshes.
    """

    def __init__(
        self,
        refresh: Callable[[], None],
        *,
        min_interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._refresh = refresh
        self._min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_refresh: float | None = None
        self._last_imported = 0

    @property
    def min_interval_seconds(self) -> float:
        return self._min_interval_seconds

    @min_interval_seconds.setter
    def min_interval_seconds(self, value: float) -> None:
        self._min_interval_seconds = max(0.0, value)

    def observe(self, imported: int) -> bool:
        with self._lock:
            if imported <= self._last_imported:
                return False
            self._last_imported = imported
            now = self._clock()
            if self._last_refresh is not None and now - self._last_refresh < self._min_interval_seconds:
                return False
            self._last_refresh = now
        self._refresh()
        return True

    def flush(self) -> None:
        with self._lock:
            self._last_refresh = self._clock()
        self._refresh()
