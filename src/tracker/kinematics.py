"""Distance, bearing and speed between two consecutive samples."""

from __future__ import annotations

from dataclasses import dataclass

from shared.geo import haversine_km, initial_bearing_deg
from tracker.samples import RawSample

MPS_TO_KMH = 3.6


@dataclass(frozen=True, slots=True)
class Kinematics:
    """Motion between a previous and current sample."""
    distance_km: float
    bearing_deg: float   # initial bearing prev -> curr, [0, 360)
    speed_kmh: float
    speed_from_sensor: bool

    @property
    def distance_m(self) -> float:
        return self.distance_km * 1000.0


def estimate(prev: RawSample, curr: RawSample, elapsed_s: float) -> Kinematics:
    """Estimate motion from prev to curr.

    Args:
        prev: last processed sample
        curr: sample being processed
        elapsed_s: wall-clock seconds between the two arrivals

    Sensor speed wins when reported, finite and non-negative; otherwise speed is
    distance over elapsed time (0 when elapsed_s <= 0).
    """
    distance_km = haversine_km(prev.point, curr.point)
    bearing = initial_bearing_deg(prev.point, curr.point)

    if curr.has_speed:
        speed_kmh = curr.speed_mps * MPS_TO_KMH
        from_sensor = True
    elif elapsed_s > 0:
        speed_kmh = distance_km / elapsed_s * 3600.0
        from_sensor = False
    else:
        speed_kmh = 0.0
        from_sensor = False

    return Kinematics(
        distance_km=distance_km,
        bearing_deg=bearing,
        speed_kmh=speed_kmh,
        speed_from_sensor=from_sensor,
    )
