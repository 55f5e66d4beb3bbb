"""Synthetic vehicle tracks for offline testing.

Generates ideal trajectories, then degrades them into raw sensor samples
with Gaussian position and heading noise.

Usage:
    trackctl simulate --trajectory circle --center 41.0082,28.9784 \
        --duration 120 --speed 8 -o track.csv
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np

from shared.geo import GeoPoint, destination_point
from tracker.nmea import format_gga, format_rmc
from tracker.samples import RawSample

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrajectoryPoint:
    """A single point of an ideal track."""
    t: float        # time in seconds
    lat: float
    lon: float
    heading: float  # degrees, 0=north, clockwise
    speed_mps: float


def generate_line(
    start: GeoPoint,
    heading_deg: float = 0.0,
    speed_mps: float = 10.0,
    duration: float = 60.0,
    dt: float = 1.0,
) -> list[TrajectoryPoint]:
    """Straight line at constant speed.

    Args:
        start: starting position
        heading_deg: course in degrees (0=north, 90=east)
        speed_mps: ground speed in m/s
        duration: total time in seconds
        dt: time step
    """
    points = []
    t = 0.0
    while t <= duration:
        p = destination_point(start, heading_deg, speed_mps * t / 1000.0)
        points.append(TrajectoryPoint(t=t, lat=p.lat, lon=p.lon, heading=heading_deg, speed_mps=speed_mps))
        t += dt
    return points


def generate_circle(
    center: GeoPoint,
    radius_m: float = 200.0,
    speed_mps: float = 10.0,
    duration: float = 60.0,
    dt: float = 1.0,
) -> list[TrajectoryPoint]:
    """Clockwise circle starting due north of center."""
    omega = speed_mps / radius_m  # rad/s

    points = []
    t = 0.0
    while t <= duration:
        angle = math.degrees(omega * t) % 360.0
        p = destination_point(center, angle, radius_m / 1000.0)
        heading = (angle + 90.0) % 360.0  # tangent to circle
        points.append(TrajectoryPoint(t=t, lat=p.lat, lon=p.lon, heading=heading, speed_mps=speed_mps))
        t += dt
    return points


def generate_stop(
    position: GeoPoint,
    duration: float = 60.0,
    dt: float = 1.0,
    heading_deg: float = 0.0,
) -> list[TrajectoryPoint]:
    """Parked vehicle."""
    n = int(duration / dt) + 1
    return [
        TrajectoryPoint(t=i * dt, lat=position.lat, lon=position.lon, heading=heading_deg, speed_mps=0.0)
        for i in range(n)
    ]


def to_samples(
    points: list[TrajectoryPoint],
    accuracy_m: float = 5.0,
    heading_noise_deg: float = 0.0,
    sensor_heading: bool = True,
    sensor_speed: bool = False,
    start_ms: float = 0.0,
    seed: int | None = None,
) -> list[RawSample]:
    """Degrade an ideal track into noisy raw samples.

    Position error is isotropic Gaussian with sigma = accuracy_m / 2, so
    most samples land inside the reported accuracy circle.
    """
    rng = np.random.default_rng(seed)
    n = len(points)
    sigma_m = accuracy_m / 2.0
    offsets = rng.normal(0.0, sigma_m, size=(n, 2)) if sigma_m > 0 else np.zeros((n, 2))
    heading_err = rng.normal(0.0, heading_noise_deg, size=n) if heading_noise_deg > 0 else np.zeros(n)

    samples = []
    for p, (north, east), h_err in zip(points, offsets, heading_err):
        offset_m = math.hypot(north, east)
        bearing = math.degrees(math.atan2(east, north)) % 360.0
        noisy = destination_point(GeoPoint(p.lat, p.lon), bearing, offset_m / 1000.0)
        samples.append(RawSample(
            latitude=noisy.lat,
            longitude=noisy.lon,
            accuracy_m=accuracy_m,
            timestamp_ms=start_ms + p.t * 1000.0,
            speed_mps=p.speed_mps if sensor_speed else None,
            heading_deg=(p.heading + float(h_err)) % 360.0 if sensor_heading else None,
        ))
    return samples


def write_nmea(samples: list[RawSample], path: Path, start: datetime | None = None) -> Path:
    """Write GGA+RMC pairs, one epoch per sample."""
    start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    t0 = samples[0].timestamp_ms if samples else 0.0
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        for s in samples:
            dt = start + timedelta(milliseconds=s.timestamp_ms - t0)
            f.write(format_gga(s, dt) + "\r\n")
            f.write(format_rmc(s, dt) + "\r\n")
    logger.info("Wrote %d NMEA epochs to %s", len(samples), path)
    return path
