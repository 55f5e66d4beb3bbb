"""Retained track of the session, denoised by a minimum-displacement gate."""

from __future__ import annotations

from tracker.samples import FusedSample, PathPoint


class PathRecorder:
    """Keeps path points whose displacement since the previous processed
    sample exceeds min_distance_m."""

    def __init__(self, min_distance_m: float = 5.0):
        self._min_distance_km = min_distance_m / 1000.0
        self._points: list[PathPoint] = []

    @property
    def min_distance_m(self) -> float:
        return self._min_distance_km * 1000.0

    @min_distance_m.setter
    def min_distance_m(self, value: float) -> None:
        self._min_distance_km = value / 1000.0

    @property
    def points(self) -> list[PathPoint]:
        return list(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def offer(self, fused: FusedSample, distance_km: float) -> bool:
        """Retain the fused sample if it moved far enough.

        Samples whose timestamp does not advance past the last retained
        point are never retained.
        """
        if distance_km <= self._min_distance_km:
            return False
        if self._points and fused.timestamp_ms <= self._points[-1].timestamp_ms:
            return False
        self._points.append(PathPoint(
            lat=fused.latitude,
            lon=fused.longitude,
            timestamp_ms=fused.timestamp_ms,
            accuracy_m=fused.accuracy_m,
            speed_kmh=fused.speed_kmh,
            heading_deg=fused.heading_deg,
        ))
        return True

    def clear(self) -> None:
        self._points.clear()
