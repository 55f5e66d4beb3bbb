"""Telemetry sinks: where emitted GPS records are persisted."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from tracker.backend import BackendClient, BackendError
from tracker.samples import TelemetryRecord
from tracker.telemetry import TelemetryLogger

logger = logging.getLogger(__name__)

GPS_LOG_PATH = "/mobile/gps/log"


class TelemetrySink(Protocol):
    async def send(self, record: TelemetryRecord) -> bool:
        """Persist one record. Returns True on success."""


class HttpTelemetrySink:
    """POSTs each record to the backend GPS log endpoint."""

    def __init__(self, client: BackendClient, path: str = GPS_LOG_PATH):
        self._client = client
        self._path = path

    async def send(self, record: TelemetryRecord) -> bool:
        try:
            body = await self._client.post_json(self._path, record.to_payload())
        except BackendError as e:
            logger.warning("GPS log POST failed: %s", e)
            return False
        return bool(body.get("success", True))


class CsvTelemetrySink:
    """Appends records to a CSV log file."""

    def __init__(self, log_dir: Path, prefix: str = "gps"):
        self._logger = TelemetryLogger(log_dir, prefix)
        self._path: Path | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def open(self) -> Path:
        self._path = self._logger.start()
        return self._path

    async def send(self, record: TelemetryRecord) -> bool:
        if self._path is None:
            self.open()
        self._logger.log(record)
        return True

    def close(self) -> None:
        self._logger.stop()


class FanOutSink:
    """Sends every record to several sinks; succeeds if any one does."""

    def __init__(self, *sinks: TelemetrySink):
        self._sinks = sinks

    async def send(self, record: TelemetryRecord) -> bool:
        ok = False
        for sink in self._sinks:
            try:
                ok = await sink.send(record) or ok
            except Exception as e:
                logger.warning("Sink %s failed: %s", type(sink).__name__, e)
        return ok
