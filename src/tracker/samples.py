"""Sample and record types flowing through the tracking pipeline."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from shared.geo import GeoPoint


class HeadingSource(str, Enum):
    """Which input the fused heading was taken from on an update."""
    NONE = "none"
    SENSOR_ONLY = "sensor-only"
    COMPUTED_PRIORITY = "computed-priority"
    COMPUTED_LARGE_DIFF = "computed-large-diff"
    AVERAGED = "averaged"
    COMPUTED_ONLY = "computed-only"
    GPS_CHANGED = "gps-changed"
    MAINTAINED_SMALL_CHANGE = "maintained-small-change"
    MAINTAINED = "maintained"

    @property
    def is_maintained(self) -> bool:
        return self in (HeadingSource.MAINTAINED, HeadingSource.MAINTAINED_SMALL_CHANGE)


class OperationPhase(str, Enum):
    TO_LOADING = "TO_LOADING"
    AT_LOADING = "AT_LOADING"
    TO_UNLOADING = "TO_UNLOADING"
    AT_UNLOADING = "AT_UNLOADING"
    BREAK = "BREAK"
    REFUEL = "REFUEL"


@dataclass(frozen=True, slots=True)
class RawSample:
    """One location report from the device sensor."""
    latitude: float
    longitude: float
    accuracy_m: float
    timestamp_ms: float               # device clock
    altitude_m: float | None = None
    speed_mps: float | None = None    # sensor-reported ground speed
    heading_deg: float | None = None  # sensor-reported course, 0..360

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @property
    def has_heading(self) -> bool:
        h = self.heading_deg
        return h is not None and math.isfinite(h) and h >= 0

    @property
    def has_speed(self) -> bool:
        s = self.speed_mps
        return s is not None and math.isfinite(s) and s >= 0


@dataclass(frozen=True, slots=True)
class FusedSample:
    """The engine's best estimate after one accepted sample."""
    latitude: float
    longitude: float
    accuracy_m: float
    heading_deg: float   # [0, 360)
    speed_kmh: float     # >= 0
    source: HeadingSource
    timestamp_ms: float


@dataclass(frozen=True, slots=True)
class PathPoint:
    """A retained point of the recorded track."""
    lat: float
    lon: float
    timestamp_ms: float
    accuracy_m: float
    speed_kmh: float
    heading_deg: float


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    """A fused sample as persisted to the backend."""
    latitude: float
    longitude: float
    accuracy_m: float
    heading_deg: float
    speed_kmh: float
    timestamp_ms: float
    operation_id: str | None = None
    vehicle_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict:
        """JSON body for the GPS log endpoint."""
        ts = datetime.fromtimestamp(self.timestamp_ms / 1000.0, tz=timezone.utc)
        return {
            "operationId": self.operation_id,
            "vehicleId": self.vehicle_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy_m,
            "heading": self.heading_deg,
            "speed": self.speed_kmh,
            "timestamp": ts.isoformat().replace("+00:00", "Z"),
        }


@dataclass(frozen=True, slots=True)
class KnownLocation:
    """A place registered in the location directory."""
    id: str
    name: str
    latitude: float
    longitude: float
    location_type: str = ""
    address: str = ""
    contact_person: str | None = None
    contact_phone: str | None = None

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class ProximityMatch:
    """A known location near the current position."""
    location: KnownLocation
    distance_m: float
    bearing_deg: float
