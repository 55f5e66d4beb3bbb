"""Heading fusion policy: sensor course vs. bearing of actual movement.

GPS course over ground is noise-dominated at walking pace and below,
so the policy:
1. Clear movement + sensor heading → movement bearing at speed or over
   long hops, movement bearing on large disagreement, else their
   wrap-aware average
2. Clear movement, no sensor heading → movement bearing
3. Near-stationary + sensor heading → adopt it only on a real change
4. Near-stationary, no sensor heading → keep the last heading
"""

from __future__ import annotations

from shared.geo import angle_diff_deg
from tracker.config import FusionConfig
from tracker.kinematics import Kinematics
from tracker.samples import HeadingSource


def average_headings(a: float, b: float) -> float:
    """Average two headings across the 0/360 seam.

    When the raw difference exceeds 90°, the smaller value is lifted by
    360 before averaging.
    """
    if abs(a - b) > 90.0:
        if a < b:
            a += 360.0
        else:
            b += 360.0
    return ((a + b) / 2.0) % 360.0


def has_clear_movement(kin: Kinematics, config: FusionConfig) -> bool:
    return (
        kin.distance_m >= config.min_distance_for_heading_m
        or kin.speed_kmh >= config.min_speed_for_heading_kmh
    )


def choose_heading(
    kin: Kinematics,
    sensor_heading: float | None,
    last_heading: float | None,
    config: FusionConfig,
) -> tuple[float, HeadingSource]:
    """Pick this update's heading before smoothing.

    Args:
        kin: motion since the previous processed sample
        sensor_heading: course reported by the device, or None
        last_heading: last fused heading, None if never set

    Returns:
        (heading_deg, source)
    """
    previous = last_heading if last_heading is not None else 0.0

    if has_clear_movement(kin, config):
        bearing = kin.bearing_deg
        if sensor_heading is None:
            return bearing, HeadingSource.COMPUTED_ONLY

        if kin.speed_kmh > config.high_speed_kmh or kin.distance_m > config.long_distance_m:
            return bearing, HeadingSource.COMPUTED_PRIORITY

        if angle_diff_deg(sensor_heading, bearing) > config.large_diff_deg:
            # Sensor course is stale or noisy
            return bearing, HeadingSource.COMPUTED_LARGE_DIFF

        return average_headings(sensor_heading, bearing), HeadingSource.AVERAGED

    if sensor_heading is not None:
        change = angle_diff_deg(sensor_heading, previous)
        if last_heading is None or change >= config.min_heading_change_deg:
            return sensor_heading % 360.0, HeadingSource.GPS_CHANGED
        return previous, HeadingSource.MAINTAINED_SMALL_CHANGE

    return previous, HeadingSource.MAINTAINED
