"""Vehicle position tracking service.

Reads NMEA fixes from the serial GPS receiver, fuses heading and speed,
posts throttled GPS telemetry to the fleet backend and watches for
nearby registered locations.

Runs until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from tracker.backend import BackendClient
from tracker.config import ServiceConfig
from tracker.directory import HttpLocationDirectory
from tracker.errors import PositionError
from tracker.engine import TrackingCallbacks
from tracker.samples import ProximityMatch
from tracker.service import TrackingService
from tracker.sinks import CsvTelemetrySink, FanOutSink, HttpTelemetrySink
from tracker.sources import SerialNmeaSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/tracker/config.json")


def load_config(path: Path | None = None) -> ServiceConfig:
    """Load config from a JSON file if present, else defaults."""
    path = path or Path(os.environ.get("TRACKER_CONFIG", DEFAULT_CONFIG_PATH))
    if path.exists():
        return ServiceConfig.model_validate_json(path.read_text())
    return ServiceConfig()


def _on_match(match: ProximityMatch) -> None:
    loc = match.location
    logger.info(
        "Arrived near %s [%s] %.0fm away%s",
        loc.name, loc.location_type, match.distance_m,
        f", contact {loc.contact_person} {loc.contact_phone or ''}" if loc.contact_person else "",
    )


def _on_error(error: PositionError) -> None:
    logger.error("GPS unavailable: %s", error)


async def run(config: ServiceConfig) -> int:
    """Run the service until a shutdown signal. Returns the exit code."""
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    source = SerialNmeaSource(config.serial.port, config.serial.baudrate)
    client = BackendClient(config.backend)

    csv_sink: CsvTelemetrySink | None = None
    sink = HttpTelemetrySink(client)
    if config.telemetry_csv_dir is not None:
        csv_sink = CsvTelemetrySink(config.telemetry_csv_dir)
        csv_sink.open()
        sink = FanOutSink(sink, csv_sink)

    service = TrackingService(
        source,
        config.tracking,
        sink=sink,
        directory=HttpLocationDirectory(client),
        phase=config.phase,
        callbacks=TrackingCallbacks(on_error=_on_error),
        on_match=_on_match,
    )

    logger.info(
        "Tracker running (operation=%s, vehicle=%s, telemetry=%s, csv=%s)",
        config.tracking.operation_id, config.tracking.vehicle_id,
        config.tracking.logging_enabled, config.telemetry_csv_dir,
    )
    try:
        try:
            await service.start()
        except PositionError as e:
            logger.error("Could not acquire a first fix: %s", e)
            return 1
        await shutdown.wait()
        logger.info("Shutdown signal received")
        return 0
    finally:
        await service.stop()
        source.close()
        await client.close()
        if csv_sink is not None:
            csv_sink.close()
        stats = service.engine.statistics
        logger.info(
            "Tracker shutdown. %.3fkm, avg %.1fkm/h, max %.1fkm/h, %d records",
            stats.total_distance_km, stats.average_speed_kmh, stats.max_speed_kmh,
            len(service.engine.export_telemetry()),
        )


def main() -> None:
    """Entry point for the tracking service."""
    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    sys.exit(asyncio.run(run(config)))


if __name__ == "__main__":
    main()
