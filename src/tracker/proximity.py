"""Nearby-location detection with a timed show/auto-dismiss lifecycle.

Independently of the position stream, the scanner periodically asks the
directory what is near the latest position. The nearest hit becomes the
single active proximity event:

    new nearest id → shown (visible) → popup_duration → hidden → fade → cleared

The same location does not re-trigger while it stays the nearest match;
it can trigger again after an empty scan (the vehicle left the radius).
Directory failures are logged and treated as "no answer" for that cycle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from tracker.config import ProximityConfig
from tracker.directory import NearbyQuery, ProximityDirectory
from tracker.samples import OperationPhase, ProximityMatch

logger = logging.getLogger(__name__)


class ProximityScanner:
    """Polls a ProximityDirectory and manages one active ProximityMatch.

    Usage:
        scanner = ProximityScanner(directory, ProximityConfig())
        scanner.set_phase(OperationPhase.TO_LOADING)
        scanner.update_position(lat, lon)
        scanner.enable()      # inside a running event loop
        ...
        scanner.close()
    """

    def __init__(
        self,
        directory: ProximityDirectory,
        config: ProximityConfig | None = None,
        operation_id: str | None = None,
        on_shown: Callable[[ProximityMatch], None] | None = None,
        on_cleared: Callable[[], None] | None = None,
    ):
        self._directory = directory
        self._config = config or ProximityConfig()
        self._operation_id = operation_id
        self._on_shown = on_shown
        self._on_cleared = on_cleared

        self._position: tuple[float, float] | None = None
        self._phase: OperationPhase | None = None

        self._active: ProximityMatch | None = None
        self._visible = False
        self._last_shown_id: str | None = None
        self._pending: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None

        self._scans = 0
        self._failures = 0
        self._shown = 0

    @property
    def active_match(self) -> ProximityMatch | None:
        return self._active

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def last_shown_id(self) -> str | None:
        return self._last_shown_id

    @property
    def shown_count(self) -> int:
        return self._shown

    @property
    def scan_count(self) -> int:
        return self._scans

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_pending_timer(self) -> bool:
        return self._pending is not None

    def update_position(self, latitude: float, longitude: float) -> None:
        self._position = (latitude, longitude)

    def set_phase(self, phase: OperationPhase | None) -> None:
        self._phase = phase

    def enable(self) -> None:
        """Start the polling loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "Proximity scanner enabled (radius=%.0fm, every %dms)",
            self._config.radius_m, self._config.poll_interval_ms,
        )

    def disable(self) -> None:
        """Stop polling and cancel any pending dismiss timer."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Proximity scanner disabled")
        self._cancel_timer()

    close = disable

    @property
    def config(self) -> ProximityConfig:
        return self._config

    def configure(self, config: ProximityConfig) -> None:
        """Apply new radius and timings; the next poll uses them."""
        self._config = config

    async def _run(self) -> None:
        while True:
            await self.scan_once()
            await asyncio.sleep(self._config.poll_interval_ms / 1000.0)

    async def scan_once(self) -> ProximityMatch | None:
        """Run one directory query; returns the match shown by this scan, if any."""
        if self._position is None or self._phase is None:
            return None

        lat, lon = self._position
        query = NearbyQuery(
            latitude=lat,
            longitude=lon,
            radius_m=self._config.radius_m,
            phase=self._phase,
            operation_id=self._operation_id,
        )
        self._scans += 1
        try:
            results = await self._directory.query_nearby(query)
        except Exception as e:
            self._failures += 1
            logger.warning("Nearby location query failed: %s", e)
            return None

        if not results:
            if self._last_shown_id is not None:
                logger.debug("Left range of %s", self._last_shown_id)
            self._last_shown_id = None
            return None

        nearest = results[0]
        if nearest.location.id == self._last_shown_id:
            return None

        self._show(nearest)
        return nearest

    def dismiss(self) -> None:
        """Hide the active event now and clear it after the fade."""
        self._visible = False
        self._replace_timer(self._config.fade_ms / 1000.0, self._clear)

    def _show(self, match: ProximityMatch) -> None:
        self._last_shown_id = match.location.id
        self._active = match
        self._visible = True
        self._shown += 1
        logger.info(
            "Nearby location: %s (%.0fm, bearing %.0f)",
            match.location.name, match.distance_m, match.bearing_deg,
        )
        self._replace_timer(self._config.popup_duration_ms / 1000.0, self._hide)
        if self._on_shown is not None:
            self._on_shown(match)

    def _hide(self) -> None:
        self._visible = False
        self._replace_timer(self._config.fade_ms / 1000.0, self._clear)

    def _clear(self) -> None:
        self._pending = None
        self._active = None
        if self._on_cleared is not None:
            self._on_cleared()

    def _replace_timer(self, delay_s: float, callback: Callable[[], None]) -> None:
        """Cancel the pending timer and schedule callback in its slot."""
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to time the fade on; settle immediately
            callback()
            return
        self._pending = loop.call_later(delay_s, callback)

    def _cancel_timer(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
