"""Tracking session engine: lifecycle, fusion pipeline, outputs.

Lifecycle:
    IDLE --start--> TRACKING --pause--> PAUSED --resume--> TRACKING
    any  --stop---> STOPPED  --start--> TRACKING

Per accepted sample (TRACKING only):
1. Pure fusion step (validate → kinematics → heading policy → smoothing)
2. Quality tier from accuracy
3. Statistics and path, both behind the displacement gate
4. Throttled telemetry emission
5. Caller callbacks

Acquisition errors are held and reported but never change the lifecycle
state; the caller decides whether to stop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from tracker.config import TrackingConfig
from tracker.errors import PositionError, PositionErrorKind, TrackingStateError
from tracker.fusion import FusionState, fuse_sample
from tracker.path_recorder import PathRecorder
from tracker.quality import Quality, classify
from tracker.samples import FusedSample, PathPoint, RawSample, TelemetryRecord
from tracker.sinks import TelemetrySink
from tracker.smoothing import BoundedBuffer
from tracker.sources import AcquireOptions, PositionSource, Subscription
from tracker.statistics import StatisticsAggregator, TrackStatistics
from tracker.telemetry import TelemetryEmitter

logger = logging.getLogger(__name__)


class TrackingState(Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class TrackingMetadata:
    """Context passed with every position update."""
    accuracy_m: float
    speed_kmh: float
    heading_deg: float
    altitude_m: float | None
    total_distance_km: float
    average_speed_kmh: float
    max_speed_kmh: float
    tracking_duration_s: float
    quality: Quality


@dataclass(slots=True)
class TrackingCallbacks:
    """Optional observers of the engine's outputs."""
    on_position_update: Callable[[FusedSample, TrackingMetadata], None] | None = None
    on_accuracy_change: Callable[[float], None] | None = None
    on_speed_change: Callable[[float], None] | None = None
    on_heading_change: Callable[[float], None] | None = None
    on_error: Callable[[PositionError], None] | None = None


class TrackingEngine:
    """Owns one tracking session and processes its position stream.

    Usage:
        engine = TrackingEngine(source, TrackingConfig(operation_id="op-1"))
        await engine.start()
        ...
        engine.stop()
        engine.statistics.total_distance_km
    """

    def __init__(
        self,
        source: PositionSource,
        config: TrackingConfig | None = None,
        sink: TelemetrySink | None = None,
        callbacks: TrackingCallbacks | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._config = config or TrackingConfig()
        self._callbacks = callbacks or TrackingCallbacks()
        self._clock = clock

        self._state = TrackingState.IDLE
        self._subscription: Subscription | None = None
        self._pending_start: object | None = None  # token of the start() awaiting a first fix
        self._start_t: float | None = None
        self._error: PositionError | None = None

        self._fusion = FusionState.initial(self._config.fusion)
        self._stats = StatisticsAggregator(
            min_distance_m=self._config.min_distance_for_update_m,
            history_size=self._config.speed_history_size,
        )
        self._path = PathRecorder(min_distance_m=self._config.min_distance_for_update_m)
        self._accuracy_history = BoundedBuffer(self._config.accuracy_history_size)
        self._emitter = TelemetryEmitter(
            sink=sink,
            interval_s=self._config.telemetry_interval_ms / 1000.0,
            operation_id=self._config.operation_id,
            vehicle_id=self._config.vehicle_id,
            send_enabled=self._config.logging_enabled,
        )

        self._fused: FusedSample | None = None
        self._quality = Quality.MEDIUM
        self._altitude: float | None = None
        self._last_update_t: float | None = None
        self._samples_accepted = 0
        self._samples_dropped = 0

    # ------------------------------------------------------------------
    # Query surface

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def is_acquiring(self) -> bool:
        return self._pending_start is not None

    @property
    def is_tracking(self) -> bool:
        return self._state is TrackingState.TRACKING

    @property
    def config(self) -> TrackingConfig:
        return self._config

    @property
    def fused(self) -> FusedSample | None:
        return self._fused

    @property
    def current_sample(self) -> RawSample | None:
        return self._fusion.current

    @property
    def previous_sample(self) -> RawSample | None:
        return self._fusion.previous

    @property
    def fusion_state(self) -> FusionState:
        return self._fusion.copy()

    @property
    def statistics(self) -> TrackStatistics:
        return self._stats.snapshot

    @property
    def path(self) -> list[PathPoint]:
        return self._path.points

    @property
    def quality(self) -> Quality:
        return self._quality

    @property
    def accuracy_m(self) -> float | None:
        return self._fused.accuracy_m if self._fused else None

    @property
    def mean_accuracy_m(self) -> float | None:
        return self._accuracy_history.mean() if len(self._accuracy_history) else None

    @property
    def altitude_m(self) -> float | None:
        return self._altitude

    @property
    def error(self) -> PositionError | None:
        return self._error

    @property
    def last_update_t(self) -> float | None:
        return self._last_update_t

    @property
    def samples_accepted(self) -> int:
        return self._samples_accepted

    @property
    def samples_dropped(self) -> int:
        return self._samples_dropped

    def export_telemetry(self) -> list[TelemetryRecord]:
        """Records emitted so far in this session."""
        return self._emitter.records

    # ------------------------------------------------------------------
    # Lifecycle

    def _acquire_options(self) -> AcquireOptions:
        return AcquireOptions(
            high_accuracy=self._config.high_accuracy,
            timeout_s=self._config.timeout_ms / 1000.0,
            maximum_age_s=self._config.maximum_age_ms / 1000.0,
        )

    async def start(self) -> None:
        """Acquire a first fix, then subscribe to the position stream.

        A stop() issued while the first fix is awaited wins: start() then
        returns without subscribing and the engine stays STOPPED.

        Raises:
            TrackingStateError: a session is already running or starting
            PositionError: no first fix (denied, unavailable or timed out);
                no subscription is created
        """
        if self._state in (TrackingState.TRACKING, TrackingState.PAUSED):
            raise TrackingStateError(f"cannot start while {self._state.value}")
        if self._pending_start is not None:
            raise TrackingStateError("cannot start while acquiring a first fix")

        token = object()
        self._pending_start = token
        options = self._acquire_options()
        logger.info(
            "Starting GPS tracking (high_accuracy=%s, timeout=%.1fs)",
            options.high_accuracy, options.timeout_s,
        )
        try:
            first = await asyncio.wait_for(
                self._source.get_current_position(options),
                timeout=options.timeout_s,
            )
        except asyncio.TimeoutError:
            error = PositionError(PositionErrorKind.TIMEOUT, f"no fix within {options.timeout_s:.1f}s")
            self.handle_error(error)
            raise error from None
        except PositionError as e:
            self.handle_error(e)
            raise
        finally:
            cancelled = self._pending_start is not token
            if not cancelled:
                self._pending_start = None

        if cancelled:
            logger.info("GPS tracking start abandoned: stopped during acquisition")
            return

        t = self._clock()
        self._start_t = t
        self._fusion = FusionState.initial(self._config.fusion)
        self._stats.start(t)
        self._emitter.reset(t)
        self._error = None
        self._state = TrackingState.TRACKING

        self._process(first, t)
        self._subscription = self._source.watch(self.handle_sample, self.handle_error, options)
        logger.info("GPS tracking started")

    def stop(self) -> None:
        """Cancel the position stream. Statistics and path are kept.

        Also abandons a start() that is still waiting for its first fix.
        """
        self._pending_start = None
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._state is not TrackingState.STOPPED:
            logger.info(
                "GPS tracking stopped (%d accepted, %d dropped, %.3fkm)",
                self._samples_accepted, self._samples_dropped,
                self._stats.snapshot.total_distance_km,
            )
        self._state = TrackingState.STOPPED

    def pause(self) -> None:
        if self._state is not TrackingState.TRACKING:
            raise TrackingStateError(f"cannot pause while {self._state.value}")
        self._state = TrackingState.PAUSED
        logger.info("GPS tracking paused")

    def resume(self) -> None:
        if self._state is not TrackingState.PAUSED:
            raise TrackingStateError(f"cannot resume while {self._state.value}")
        self._state = TrackingState.TRACKING
        logger.info("GPS tracking resumed")

    def clear(self) -> None:
        """Reset path, statistics, buffers and exported records.

        The lifecycle state and the position slots are left untouched.
        """
        self._path.clear()
        self._stats.reset()
        self._fusion = self._fusion.with_empty_buffers()
        self._accuracy_history.clear()
        self._emitter.clear()
        logger.info("Path data cleared")

    def update_config(self, **changes) -> TrackingConfig:
        """Merge option changes into the running configuration.

        Buffer size changes resize the live buffers, keeping their newest
        values. Nested sections (fusion, proximity) are replaced whole.
        """
        merged = {**self._config.model_dump(), **changes}
        old = self._config
        self._config = TrackingConfig.model_validate(merged)
        if self._config.fusion != old.fusion:
            self._fusion = self._fusion.resized(self._config.fusion)
        if self._config.accuracy_history_size != old.accuracy_history_size:
            self._accuracy_history = BoundedBuffer(
                self._config.accuracy_history_size, self._accuracy_history.values(),
            )
        if self._config.speed_history_size != old.speed_history_size:
            self._stats.resize_history(self._config.speed_history_size)
        self._emitter.configure(
            interval_s=self._config.telemetry_interval_ms / 1000.0,
            operation_id=self._config.operation_id,
            vehicle_id=self._config.vehicle_id,
            send_enabled=self._config.logging_enabled,
        )
        self._stats.min_distance_m = self._config.min_distance_for_update_m
        self._path.min_distance_m = self._config.min_distance_for_update_m
        return self._config

    async def drain(self) -> None:
        """Wait for in-flight telemetry sends."""
        await self._emitter.drain()

    async def __aenter__(self) -> TrackingEngine:
        if self._config.auto_start:
            await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        self.stop()
        await self._emitter.drain()

    # ------------------------------------------------------------------
    # Stream callbacks

    def handle_sample(self, sample: RawSample) -> FusedSample | None:
        """Subscription callback: process a sample if tracking."""
        if self._state is not TrackingState.TRACKING:
            logger.debug("Discarding sample while %s", self._state.value)
            return None
        return self._process(sample, self._clock())

    def handle_error(self, error: PositionError) -> None:
        """Subscription callback: hold and report an acquisition error."""
        self._error = error
        logger.warning("GPS error (%s): %s", error.kind.value, error)
        if self._callbacks.on_error is not None:
            self._callbacks.on_error(error)

    def _process(self, sample: RawSample, t: float) -> FusedSample | None:
        new_state, step = fuse_sample(self._fusion, sample, t, self._config.fusion)
        if step is None:
            self._samples_dropped += 1
            return None
        self._fusion = new_state
        self._samples_accepted += 1

        fused = step.fused
        self._accuracy_history.push(fused.accuracy_m)
        self._quality = classify(fused.accuracy_m)
        if sample.altitude_m is not None:
            self._altitude = sample.altitude_m

        if step.first:
            self._stats.tick(t)
        else:
            self._stats.record(step.distance_km, fused.speed_kmh, t)
            self._path.offer(fused, step.distance_km)

        self._fused = fused
        self._last_update_t = t
        self._emitter.offer(fused, t)
        self._notify(fused)
        return fused

    def _notify(self, fused: FusedSample) -> None:
        cb = self._callbacks
        if cb.on_position_update is not None:
            stats = self._stats.snapshot
            cb.on_position_update(fused, TrackingMetadata(
                accuracy_m=fused.accuracy_m,
                speed_kmh=fused.speed_kmh,
                heading_deg=fused.heading_deg,
                altitude_m=self._altitude,
                total_distance_km=stats.total_distance_km,
                average_speed_kmh=stats.average_speed_kmh,
                max_speed_kmh=stats.max_speed_kmh,
                tracking_duration_s=stats.tracking_duration_s,
                quality=self._quality,
            ))
        if cb.on_accuracy_change is not None:
            cb.on_accuracy_change(fused.accuracy_m)
        if cb.on_speed_change is not None:
            cb.on_speed_change(fused.speed_kmh)
        if cb.on_heading_change is not None:
            cb.on_heading_change(fused.heading_deg)
