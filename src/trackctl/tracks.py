"""CSV track files: one raw position sample per row.

Empty cells mean "not reported" for the optional sensor fields.
"""

from __future__ import annotations

import csv
from pathlib import Path

from tracker.samples import RawSample

TRACK_FIELDS = [
    "timestamp_ms",
    "lat",
    "lon",
    "accuracy_m",
    "altitude_m",
    "speed_mps",
    "heading_deg",
]


def _opt(value: float | None, fmt: str) -> str:
    return "" if value is None else format(value, fmt)


def _parse_opt(value: str | None) -> float | None:
    if value is None or value.strip() == "":
        return None
    return float(value)


def write_track_csv(samples: list[RawSample], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(TRACK_FIELDS)
        for s in samples:
            writer.writerow([
                f"{s.timestamp_ms:.0f}",
                f"{s.latitude:.8f}",
                f"{s.longitude:.8f}",
                f"{s.accuracy_m:.2f}",
                _opt(s.altitude_m, ".1f"),
                _opt(s.speed_mps, ".3f"),
                _opt(s.heading_deg, ".2f"),
            ])
    return path


def read_track_csv(path: Path) -> list[RawSample]:
    """Load a track, sorted by timestamp."""
    with open(path, newline="") as f:
        samples = [
            RawSample(
                latitude=float(row["lat"]),
                longitude=float(row["lon"]),
                accuracy_m=float(row["accuracy_m"]),
                timestamp_ms=float(row["timestamp_ms"]),
                altitude_m=_parse_opt(row.get("altitude_m")),
                speed_mps=_parse_opt(row.get("speed_mps")),
                heading_deg=_parse_opt(row.get("heading_deg")),
            )
            for row in csv.DictReader(f)
        ]
    samples.sort(key=lambda s: s.timestamp_ms)
    return samples
