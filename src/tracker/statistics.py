"""Running track statistics: distance, average/max speed, duration.

Distance and the speed history only advance on updates that pass the
displacement gate, so GPS jitter while parked does not inflate them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tracker.smoothing import BoundedBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackStatistics:
    """Snapshot of the running totals."""
    total_distance_km: float = 0.0
    average_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    tracking_duration_s: float = 0.0


class StatisticsAggregator:
    """Accumulates totals for one tracking session.

    Usage:
        stats = StatisticsAggregator(min_distance_m=5.0)
        stats.start(t)
        stats.record(distance_km, smoothed_speed_kmh, t)
        stats.snapshot.total_distance_km
    """

    def __init__(self, min_distance_m: float = 5.0, history_size: int = 50):
        self._min_distance_km = min_distance_m / 1000.0
        self._speed_history = BoundedBuffer(history_size)
        self._total_distance_km = 0.0
        self._average_speed = 0.0
        self._max_speed = 0.0
        self._start_t: float | None = None
        self._duration_s = 0.0

    @property
    def min_distance_m(self) -> float:
        return self._min_distance_km * 1000.0

    @min_distance_m.setter
    def min_distance_m(self, value: float) -> None:
        self._min_distance_km = value / 1000.0

    @property
    def snapshot(self) -> TrackStatistics:
        return TrackStatistics(
            total_distance_km=self._total_distance_km,
            average_speed_kmh=self._average_speed,
            max_speed_kmh=self._max_speed,
            tracking_duration_s=self._duration_s,
        )

    @property
    def speed_history(self) -> list[float]:
        return self._speed_history.values()

    def resize_history(self, size: int) -> None:
        """Change the speed history capacity, keeping the newest speeds."""
        self._speed_history = BoundedBuffer(size, self._speed_history.values())

    def passes_gate(self, distance_km: float) -> bool:
        return distance_km > self._min_distance_km

    def start(self, t: float) -> None:
        """Mark the session start time."""
        self._start_t = t
        self._duration_s = 0.0

    def record(self, distance_km: float, speed_kmh: float, t: float) -> bool:
        """Account for one processed update.

        Returns True if the update passed the displacement gate.
        """
        accepted = self.passes_gate(distance_km)
        if accepted:
            self._total_distance_km += distance_km
            self._speed_history.push(speed_kmh)
            self._average_speed = self._speed_history.mean()
            self._max_speed = self._speed_history.max()
            logger.debug("Total distance: %.3fkm", self._total_distance_km)
        self.tick(t)
        return accepted

    def tick(self, t: float) -> None:
        """Refresh the tracking duration."""
        if self._start_t is not None:
            self._duration_s = max(0.0, t - self._start_t)

    def reset(self) -> None:
        """Zero all totals. The start time is kept."""
        self._speed_history.clear()
        self._total_distance_km = 0.0
        self._average_speed = 0.0
        self._max_speed = 0.0
