"""Offline replay of recorded tracks and analysis of telemetry logs.

Replay runs the real engine on a virtual clock taken from the sample
timestamps, so speeds, durations and telemetry throttling come out as
they would have live. Proximity scans happen at the configured poll
interval of that virtual clock.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from shared.geo import haversine_km, GeoPoint
from tracker.config import TrackingConfig
from tracker.directory import InMemoryLocationDirectory
from tracker.engine import TrackingCallbacks, TrackingEngine
from tracker.errors import PositionError
from tracker.proximity import ProximityScanner
from tracker.samples import (
    FusedSample, KnownLocation, OperationPhase, PathPoint, ProximityMatch,
    RawSample, TelemetryRecord,
)
from tracker.sinks import TelemetrySink
from tracker.sources import ReplaySource
from tracker.statistics import TrackStatistics


@dataclass(slots=True)
class ReplayResult:
    """Everything a replayed session produced."""
    statistics: TrackStatistics
    path: list[PathPoint]
    records: list[TelemetryRecord]
    fused: list[FusedSample] = field(default_factory=list)
    matches: list[ProximityMatch] = field(default_factory=list)
    errors: list[PositionError] = field(default_factory=list)
    dropped: int = 0

    def summary(self) -> str:
        s = self.statistics
        lines = [
            f"Duration: {s.tracking_duration_s:.1f}s",
            f"Samples: {len(self.fused)} fused, {self.dropped} dropped",
            f"Distance: {s.total_distance_km:.3f} km",
            f"Speed: {s.average_speed_kmh:.1f} km/h avg, {s.max_speed_kmh:.1f} km/h max",
            f"Path Points: {len(self.path)}",
            f"Telemetry Records: {len(self.records)}",
            f"Errors: {len(self.errors)}",
        ]
        for m in self.matches:
            lines.append(f"Nearby: {m.location.name} ({m.distance_m:.0f} m)")
        return "\n".join(lines)


async def replay_track(
    samples: list[RawSample],
    config: TrackingConfig | None = None,
    locations: list[KnownLocation] | None = None,
    phase: OperationPhase | None = None,
    sink: TelemetrySink | None = None,
) -> ReplayResult:
    """Run a full tracking session over recorded samples."""
    config = config or TrackingConfig()
    source = ReplaySource(samples)

    fused: list[FusedSample] = []
    errors: list[PositionError] = []
    scan_points: list[tuple[float, float]] = []
    poll_s = config.proximity.poll_interval_ms / 1000.0
    last_poll: list[float] = []

    def on_update(sample: FusedSample, metadata) -> None:
        fused.append(sample)
        t = source.clock()
        if not last_poll or t - last_poll[0] >= poll_s:
            last_poll[:] = [t]
            scan_points.append((sample.latitude, sample.longitude))

    engine = TrackingEngine(
        source,
        config,
        sink=sink,
        callbacks=TrackingCallbacks(on_position_update=on_update, on_error=errors.append),
        clock=source.clock,
    )
    try:
        await engine.start()
    except PositionError:
        return ReplayResult(engine.statistics, engine.path, engine.export_telemetry(), errors=errors)

    await source.wait_finished()
    engine.stop()
    await engine.drain()

    matches: list[ProximityMatch] = []
    if locations and phase is not None and config.proximity.enabled:
        scanner = ProximityScanner(
            InMemoryLocationDirectory(locations),
            config.proximity,
            operation_id=config.operation_id,
            on_shown=matches.append,
        )
        scanner.set_phase(phase)
        for lat, lon in scan_points:
            scanner.update_position(lat, lon)
            await scanner.scan_once()
        scanner.close()

    return ReplayResult(
        statistics=engine.statistics,
        path=engine.path,
        records=engine.export_telemetry(),
        fused=fused,
        matches=matches,
        errors=errors,
        dropped=engine.samples_dropped,
    )


@dataclass(slots=True)
class TelemetryStats:
    """Statistics over a telemetry log."""
    records: int = 0
    duration_s: float = 0.0
    distance_km: float = 0.0
    mean_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    mean_accuracy_m: float = 0.0
    max_gap_s: float = 0.0

    def summary(self) -> str:
        return "\n".join([
            f"Records: {self.records}",
            f"Duration: {self.duration_s:.1f}s",
            f"Distance: {self.distance_km:.3f} km",
            f"Speed: {self.mean_speed_kmh:.1f} km/h avg, {self.max_speed_kmh:.1f} km/h max",
            f"Accuracy: {self.mean_accuracy_m:.1f} m avg",
            f"Max Gap: {self.max_gap_s:.1f}s",
        ])


def analyze_telemetry(records: list[TelemetryRecord]) -> TelemetryStats:
    """Compute statistics from telemetry records."""
    if not records:
        return TelemetryStats()

    records = sorted(records, key=lambda r: r.timestamp_ms)
    ts = np.array([r.timestamp_ms for r in records]) / 1000.0
    speeds = np.array([r.speed_kmh for r in records])
    accuracies = np.array([r.accuracy_m for r in records])

    distance = sum(
        haversine_km(GeoPoint(a.latitude, a.longitude), GeoPoint(b.latitude, b.longitude))
        for a, b in zip(records, records[1:])
    )
    return TelemetryStats(
        records=len(records),
        duration_s=float(ts[-1] - ts[0]),
        distance_km=distance,
        mean_speed_kmh=float(speeds.mean()),
        max_speed_kmh=float(speeds.max()),
        mean_accuracy_m=float(accuracies.mean()),
        max_gap_s=float(np.diff(ts).max()) if len(ts) > 1 else 0.0,
    )


def path_to_geojson(path: list[PathPoint]) -> dict:
    """Convert a recorded path to a GeoJSON FeatureCollection."""
    features = []
    coords = [[p.lon, p.lat] for p in path]
    if coords:
        features.append({
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": coords},
            "properties": {"type": "path"},
        })
    for p in path:
        features.append({
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [p.lon, p.lat]},
            "properties": {
                "timestamp_ms": p.timestamp_ms,
                "accuracy_m": p.accuracy_m,
                "speed_kmh": p.speed_kmh,
                "heading_deg": p.heading_deg,
            },
        })
    return {"type": "FeatureCollection", "features": features}


def save_geojson(path: list[PathPoint], output: Path) -> Path:
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w") as f:
        json.dump(path_to_geojson(path), f, indent=2)
    return output
