"""Minimum-interval throttle for outbound telemetry.

Persisting every fused sample would flood the backend; at most one
record per interval is let through.
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass(slots=True)
class ThrottleStats:
    """Throttle statistics."""
    total_requests: int = 0
    accepted: int = 0
    throttled: int = 0


class IntervalThrottle:
    """Allows an event only when more than min_interval_s has passed
    since the last allowed one.

    Usage:
        throttle = IntervalThrottle(min_interval_s=5.0)
        throttle.reset(t_start)
        if throttle.allow(t):
            emit(...)
    """

    def __init__(self, min_interval_s: float = 5.0):
        self._min_interval = max(0.0, min_interval_s)
        self._last_accept_t: float | None = None
        self._stats = ThrottleStats()

    @property
    def stats(self) -> ThrottleStats:
        return self._stats

    @property
    def min_interval_s(self) -> float:
        return self._min_interval

    @property
    def last_accept_t(self) -> float | None:
        return self._last_accept_t

    def allow(self, t: float | None = None) -> bool:
        """Check if an event is allowed at time t, and record it if so."""
        if t is None:
            t = time.monotonic()

        self._stats.total_requests += 1
        if self._last_accept_t is None or t - self._last_accept_t > self._min_interval:
            self._last_accept_t = t
            self._stats.accepted += 1
            return True

        self._stats.throttled += 1
        return False

    def time_until_next(self, t: float | None = None) -> float:
        """Seconds until the next event would be allowed."""
        if self._last_accept_t is None:
            return 0.0
        if t is None:
            t = time.monotonic()
        return max(0.0, self._last_accept_t + self._min_interval - t)

    def reset(self, t: float | None = None) -> None:
        """Restart the interval at t (or allow immediately when t is None)."""
        self._last_accept_t = t
        self._stats = ThrottleStats()
