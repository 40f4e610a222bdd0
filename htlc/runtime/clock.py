"""
htlc.runtime.clock — trusted timestamp oracle.

The lock engine reads time exactly once per create and once per refund, always
through a `Clock`. Readings are integer milliseconds and never decrease.

- ManualClock: fully deterministic; tests and simulations move it with
  `advance(ms)` / `set(ms)`. Moving it backwards raises ClockError.
- SystemClock: wall-clock milliseconds, clamped so a backwards NTP step can
  never produce a smaller reading than one already handed out.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol, runtime_checkable

from ..errors import ClockError


@runtime_checkable
class Clock(Protocol):
    """Monotonically non-decreasing millisecond timestamp source."""

    def timestamp_ms(self) -> int: ...


def _check_ms(name: str, v: object) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ClockError(f"{name} must be int, got {type(v).__name__}")
    if v < 0:
        raise ClockError(f"{name} must be non-negative, got {v}")
    return v


class ManualClock:
    """Clock whose reading only changes when told to."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now = _check_ms("start_ms", start_ms)
        self._lock = threading.Lock()

    def timestamp_ms(self) -> int:
        with self._lock:
            return self._now

    def advance(self, ms: int) -> int:
        """Move forward by `ms` milliseconds; returns the new reading."""
        _check_ms("ms", ms)
        with self._lock:
            self._now += ms
            return self._now

    def set(self, ms: int) -> None:
        _check_ms("ms", ms)
        with self._lock:
            if ms < self._now:
                raise ClockError(
                    "clock cannot move backwards",
                    data={"now_ms": self._now, "requested_ms": ms},
                )
            self._now = ms

    def __repr__(self) -> str:
        return f"ManualClock(now_ms={self._now})"


class SystemClock:
    """Wall clock in milliseconds, clamped to be non-decreasing."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def timestamp_ms(self) -> int:
        now = time.time_ns() // 1_000_000
        with self._lock:
            if now < self._last:
                now = self._last
            self._last = now
            return now


__all__ = ["Clock", "ManualClock", "SystemClock"]
