"""Timestamp sources for registry mutations."""

from __future__ import annotations

import time


class Clock:
    def now(self) -> int:  # pragma: no cover - interface
        raise NotImplementedError


class SystemClock(Clock):
    """Unix seconds from the wall clock, never moving backwards."""

    def __init__(self) -> None:
        self._last = 0

    def now(self) -> int:
        current = int(time.time())
        if current < self._last:
            current = self._last
        self._last = current
        return current
