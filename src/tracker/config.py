"""Runtime configuration for the position tracking service."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel

from tracker.samples import OperationPhase


class FusionConfig(BaseModel):
    """Gates used by the heading/speed fusion policy."""
    min_distance_for_heading_m: float = 2.0
    min_speed_for_heading_kmh: float = 0.3
    high_speed_kmh: float = 5.0          # above this, movement bearing wins
    long_distance_m: float = 10.0        # above this, movement bearing wins
    large_diff_deg: float = 30.0         # sensor vs movement disagreement
    min_heading_change_deg: float = 5.0  # when nearly stationary
    heading_buffer_size: int = 5
    speed_buffer_size: int = 3


class ProximityConfig(BaseModel):
    """Nearby-location detection settings."""
    enabled: bool = True
    radius_m: float = 150.0
    poll_interval_ms: int = 5000
    popup_duration_ms: int = 5000
    fade_ms: int = 300


class BackendConfig(BaseModel):
    """Fleet backend HTTP API."""
    base_url: str = "http://localhost:3000/api/v1"
    timeout_s: float = 10.0
    api_token: str | None = None


class SerialConfig(BaseModel):
    """Serial NMEA GPS receiver."""
    port: str = "/dev/ttyUSB0"
    baudrate: int = 9600


class TrackingConfig(BaseModel):
    """Options recognised by the tracking engine."""
    high_accuracy: bool = True
    timeout_ms: int = 10000         # first-fix acquisition timeout
    maximum_age_ms: int = 0         # oldest cached fix accepted
    auto_start: bool = False
    logging_enabled: bool = False
    operation_id: str | None = None
    vehicle_id: str | None = None
    telemetry_interval_ms: int = 5000
    min_distance_for_update_m: float = 5.0  # path/distance jitter gate
    accuracy_history_size: int = 10
    speed_history_size: int = 50
    fusion: FusionConfig = FusionConfig()
    proximity: ProximityConfig = ProximityConfig()


class ServiceConfig(BaseModel):
    """Top-level configuration."""
    tracking: TrackingConfig = TrackingConfig()
    backend: BackendConfig = BackendConfig()
    serial: SerialConfig = SerialConfig()
    log_level: str = "INFO"
    phase: OperationPhase | None = None  # operation phase used for proximity lookups

    # Telemetry
    telemetry_csv_dir: Path | None = None  # set to also log telemetry to CSV
