"""Throttled telemetry emission and CSV telemetry logging.

The emitter turns fused samples into TelemetryRecords at most once per
interval, keeps them for export, and hands them to a sink without
waiting. A failing sink never blocks or disturbs tracking.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from tracker.rate_limiter import IntervalThrottle
from tracker.samples import FusedSample, TelemetryRecord

if TYPE_CHECKING:
    from tracker.sinks import TelemetrySink

logger = logging.getLogger(__name__)

FIELDS = [
    "id",
    "timestamp_ms",
    "operation_id",
    "vehicle_id",
    "lat",
    "lon",
    "accuracy_m",
    "heading_deg",
    "speed_kmh",
    "created_at",
]


def record_to_row(record: TelemetryRecord) -> list:
    return [
        record.id,
        f"{record.timestamp_ms:.0f}",
        record.operation_id or "",
        record.vehicle_id or "",
        f"{record.latitude:.8f}",
        f"{record.longitude:.8f}",
        f"{record.accuracy_m:.1f}",
        f"{record.heading_deg:.1f}",
        f"{record.speed_kmh:.2f}",
        record.created_at.isoformat(),
    ]


class TelemetryLogger:
    """Writes telemetry records to a CSV log file."""

    def __init__(self, log_dir: Path, prefix: str = "gps"):
        self._log_dir = log_dir
        self._prefix = prefix
        self._writer = None
        self._file = None
        self._record_count = 0

    @property
    def record_count(self) -> int:
        return self._record_count

    def start(self) -> Path:
        """Open a new log file. Returns the file path."""
        self._log_dir.mkdir(parents=True, exist_ok=True)
        ts = time.strftime("%Y%m%d_%H%M%S")
        path = self._log_dir / f"{self._prefix}_{ts}.csv"
        self._file = open(path, "w", newline="")
        self._writer = csv.writer(self._file)
        self._writer.writerow(FIELDS)
        self._record_count = 0
        logger.info("Telemetry logging to %s", path)
        return path

    def log(self, record: TelemetryRecord) -> None:
        """Write a telemetry record."""
        if self._writer is None:
            return
        self._writer.writerow(record_to_row(record))
        self._record_count += 1
        # Flush every 20 records
        if self._record_count % 20 == 0 and self._file:
            self._file.flush()

    def stop(self) -> None:
        """Close the log file."""
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None
            logger.info("Telemetry stopped. %d records logged.", self._record_count)


def write_records_csv(records: list[TelemetryRecord], path: Path) -> Path:
    """Export a list of records to a single CSV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(FIELDS)
        for record in records:
            writer.writerow(record_to_row(record))
    return path


def read_records_csv(path: Path) -> list[TelemetryRecord]:
    """Load records written by write_records_csv or TelemetryLogger."""
    with open(path, newline="") as f:
        return [
            TelemetryRecord(
                latitude=float(row["lat"]),
                longitude=float(row["lon"]),
                accuracy_m=float(row["accuracy_m"]),
                heading_deg=float(row["heading_deg"]),
                speed_kmh=float(row["speed_kmh"]),
                timestamp_ms=float(row["timestamp_ms"]),
                operation_id=row["operation_id"] or None,
                vehicle_id=row["vehicle_id"] or None,
                id=row["id"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in csv.DictReader(f)
        ]


class TelemetryEmitter:
    """Rate-limited producer of telemetry records.

    Usage:
        emitter = TelemetryEmitter(sink, interval_s=5.0)
        emitter.reset(t_start)
        emitter.offer(fused, t)  # inside a running event loop when sink is set
        await emitter.drain()
    """

    def __init__(
        self,
        sink: TelemetrySink | None = None,
        interval_s: float = 5.0,
        operation_id: str | None = None,
        vehicle_id: str | None = None,
        send_enabled: bool = False,
    ):
        self._sink = sink
        self._throttle = IntervalThrottle(interval_s)
        self._operation_id = operation_id
        self._vehicle_id = vehicle_id
        self._send_enabled = send_enabled
        self._records: list[TelemetryRecord] = []
        self._pending: set[asyncio.Task] = set()
        self._send_failures = 0

    @property
    def records(self) -> list[TelemetryRecord]:
        return list(self._records)

    @property
    def send_failures(self) -> int:
        return self._send_failures

    @property
    def throttle(self) -> IntervalThrottle:
        return self._throttle

    def configure(
        self,
        interval_s: float,
        operation_id: str | None,
        vehicle_id: str | None,
        send_enabled: bool,
    ) -> None:
        """Apply new options; the last-emitted time is kept."""
        last = self._throttle.last_accept_t
        self._throttle = IntervalThrottle(interval_s)
        self._throttle.reset(last)
        self._operation_id = operation_id
        self._vehicle_id = vehicle_id
        self._send_enabled = send_enabled

    @property
    def _should_send(self) -> bool:
        return self._send_enabled and self._operation_id is not None and self._sink is not None

    def reset(self, t: float | None = None) -> None:
        """Restart the emission interval at t."""
        self._throttle.reset(t)

    def clear(self) -> None:
        """Forget exported records."""
        self._records.clear()

    def offer(self, fused: FusedSample, t: float) -> TelemetryRecord | None:
        """Emit a record for fused if the interval has elapsed.

        Returns the emitted record, or None when throttled.
        """
        if not self._throttle.allow(t):
            return None

        record = TelemetryRecord(
            latitude=fused.latitude,
            longitude=fused.longitude,
            accuracy_m=fused.accuracy_m,
            heading_deg=fused.heading_deg,
            speed_kmh=fused.speed_kmh,
            timestamp_ms=fused.timestamp_ms,
            operation_id=self._operation_id,
            vehicle_id=self._vehicle_id,
        )
        self._records.append(record)

        if self._should_send:
            self._dispatch(record)
        return record

    def _dispatch(self, record: TelemetryRecord) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; telemetry record %s not sent", record.id)
            self._send_failures += 1
            return
        task = loop.create_task(self._send(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, record: TelemetryRecord) -> None:
        try:
            ok = await self._sink.send(record)
        except Exception as e:
            self._send_failures += 1
            logger.warning("Telemetry send failed for %s: %s", record.id, e)
            return
        if ok:
            logger.debug("Telemetry record %s sent", record.id)
        else:
            self._send_failures += 1
            logger.warning("Telemetry sink rejected record %s", record.id)

    async def drain(self) -> None:
        """Wait for in-flight sends to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
