"""Tracking engine plus proximity scanner, wired together.

The scanner follows the engine's accepted positions but polls the
directory on its own timer.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from tracker.config import TrackingConfig
from tracker.directory import ProximityDirectory
from tracker.engine import TrackingCallbacks, TrackingEngine, TrackingMetadata
from tracker.proximity import ProximityScanner
from tracker.samples import FusedSample, OperationPhase, ProximityMatch
from tracker.sinks import TelemetrySink
from tracker.sources import PositionSource

logger = logging.getLogger(__name__)


class TrackingService:
    """One vehicle's tracking session and its proximity alerts.

    Usage:
        service = TrackingService(source, config, sink=sink, directory=directory,
                                  phase=OperationPhase.TO_LOADING)
        await service.start()
        ...
        await service.stop()
    """

    def __init__(
        self,
        source: PositionSource,
        config: TrackingConfig | None = None,
        sink: TelemetrySink | None = None,
        directory: ProximityDirectory | None = None,
        phase: OperationPhase | None = None,
        callbacks: TrackingCallbacks | None = None,
        on_match: Callable[[ProximityMatch], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = config or TrackingConfig()
        self._user = callbacks or TrackingCallbacks()
        self.engine = TrackingEngine(
            source,
            config,
            sink=sink,
            callbacks=TrackingCallbacks(
                on_position_update=self._on_position,
                on_accuracy_change=self._user.on_accuracy_change,
                on_speed_change=self._user.on_speed_change,
                on_heading_change=self._user.on_heading_change,
                on_error=self._user.on_error,
            ),
            clock=clock,
        )
        self.scanner: ProximityScanner | None = None
        if directory is not None and config.proximity.enabled:
            self.scanner = ProximityScanner(
                directory,
                config.proximity,
                operation_id=config.operation_id,
                on_shown=on_match,
            )
            self.scanner.set_phase(phase)

    def _on_position(self, fused: FusedSample, metadata: TrackingMetadata) -> None:
        if self.scanner is not None:
            self.scanner.update_position(fused.latitude, fused.longitude)
        if self._user.on_position_update is not None:
            self._user.on_position_update(fused, metadata)

    def set_phase(self, phase: OperationPhase | None) -> None:
        if self.scanner is not None:
            self.scanner.set_phase(phase)

    async def start(self) -> None:
        """Start tracking, then proximity polling. Raises PositionError."""
        await self.engine.start()
        if self.scanner is not None and self.engine.is_tracking:
            self.scanner.enable()

    def update_config(self, **changes) -> TrackingConfig:
        """Merge option changes into the engine and the running scanner."""
        config = self.engine.update_config(**changes)
        if self.scanner is not None:
            self.scanner.configure(config.proximity)
            if not config.proximity.enabled:
                self.scanner.disable()
            elif self.engine.is_tracking:
                self.scanner.enable()
        return config

    async def stop(self) -> None:
        """Stop both and wait for in-flight telemetry."""
        if self.scanner is not None:
            self.scanner.disable()
        self.engine.stop()
        await self.engine.drain()
