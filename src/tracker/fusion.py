"""Pure fusion step: previous state + raw sample → next state + fused sample.

The step never mutates its input state, so the engine can keep the old
state on any failure and tests can replay a sequence deterministically.

Per accepted sample:
1. Validate coordinates (invalid → state unchanged, no output)
2. First sample → seed heading/speed from the sensor (or 0)
3. Otherwise → kinematics vs. previous sample, heading policy,
   push into the smoothing buffers, smooth
4. Shift the previous/current slot pair
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tracker.config import FusionConfig
from tracker.heading_policy import choose_heading
from tracker.kinematics import MPS_TO_KMH, estimate
from tracker.samples import FusedSample, HeadingSource, RawSample
from tracker.smoothing import BoundedBuffer
from tracker.validator import validate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FusionState:
    """Kinematic state carried between samples."""
    heading_buffer: BoundedBuffer
    speed_buffer: BoundedBuffer
    previous: RawSample | None = None
    current: RawSample | None = None
    last_arrival_t: float | None = None   # engine clock, seconds
    last_heading: float | None = None     # None until a heading is known
    last_speed_kmh: float = 0.0

    @classmethod
    def initial(cls, config: FusionConfig) -> FusionState:
        return cls(
            heading_buffer=BoundedBuffer(config.heading_buffer_size),
            speed_buffer=BoundedBuffer(config.speed_buffer_size),
        )

    def copy(self) -> FusionState:
        return FusionState(
            heading_buffer=self.heading_buffer.copy(),
            speed_buffer=self.speed_buffer.copy(),
            previous=self.previous,
            current=self.current,
            last_arrival_t=self.last_arrival_t,
            last_heading=self.last_heading,
            last_speed_kmh=self.last_speed_kmh,
        )

    def with_empty_buffers(self) -> FusionState:
        """Copy with both smoothing buffers emptied; position slots are kept."""
        state = self.copy()
        state.heading_buffer.clear()
        state.speed_buffer.clear()
        return state

    def resized(self, config: FusionConfig) -> FusionState:
        """Copy with buffer capacities from config, keeping the newest values."""
        state = self.copy()
        state.heading_buffer = BoundedBuffer(config.heading_buffer_size, self.heading_buffer.values())
        state.speed_buffer = BoundedBuffer(config.speed_buffer_size, self.speed_buffer.values())
        return state


@dataclass(frozen=True, slots=True)
class FusionStep:
    """Output of one accepted sample."""
    fused: FusedSample
    distance_km: float = 0.0      # displacement since previous processed sample
    raw_speed_kmh: float = 0.0    # before smoothing
    raw_heading_deg: float = 0.0  # before smoothing
    first: bool = False


def fuse_sample(
    state: FusionState,
    sample: RawSample,
    t: float,
    config: FusionConfig,
) -> tuple[FusionState, FusionStep | None]:
    """Advance the fusion state by one raw sample.

    Args:
        state: state after the previous sample (not modified)
        sample: raw sensor report
        t: arrival time on the engine clock (monotonic seconds)
        config: fusion gates

    Returns:
        (next_state, step); step is None and next_state is state when the
        sample is rejected
    """
    if not validate(sample):
        return state, None

    new = state.copy()
    prev = state.current

    if prev is None:
        step = _first_sample(new, sample)
    else:
        elapsed_s = t - state.last_arrival_t if state.last_arrival_t is not None else 0.0
        kin = estimate(prev, sample, elapsed_s)
        sensor_heading = sample.heading_deg if sample.has_heading else None
        raw_heading, source = choose_heading(kin, sensor_heading, state.last_heading, config)

        new.speed_buffer.push(kin.speed_kmh)
        if not source.is_maintained:
            new.heading_buffer.push(raw_heading)

        smoothed_speed = new.speed_buffer.mean()
        if len(new.heading_buffer) > 1:
            smoothed_heading = new.heading_buffer.circular_mean()
        else:
            smoothed_heading = raw_heading % 360.0

        if not (source is HeadingSource.MAINTAINED and state.last_heading is None):
            new.last_heading = smoothed_heading
        new.last_speed_kmh = smoothed_speed

        logger.debug(
            "Fused: moved %.2fm bearing=%.1f speed=%.1fkm/h -> heading=%.1f (%s) speed=%.1f",
            kin.distance_m, kin.bearing_deg, kin.speed_kmh,
            smoothed_heading, source.value, smoothed_speed,
        )
        step = FusionStep(
            fused=_fused(sample, smoothed_heading, smoothed_speed, source),
            distance_km=kin.distance_km,
            raw_speed_kmh=kin.speed_kmh,
            raw_heading_deg=raw_heading,
        )

    new.previous = state.current
    new.current = sample
    new.last_arrival_t = t
    return new, step


def _first_sample(new: FusionState, sample: RawSample) -> FusionStep:
    """Seed heading and speed from the first sample of a session."""
    if sample.has_heading:
        heading = sample.heading_deg % 360.0
        source = HeadingSource.SENSOR_ONLY
        new.last_heading = heading
        new.heading_buffer.clear()
        new.heading_buffer.push(heading)
    else:
        heading = 0.0
        source = HeadingSource.NONE
        new.heading_buffer.clear()

    speed = 0.0
    if sample.has_speed:
        speed = sample.speed_mps * MPS_TO_KMH
    new.speed_buffer.clear()
    new.speed_buffer.push(speed)
    new.last_speed_kmh = speed

    logger.debug("First fix: heading=%.1f (%s) speed=%.1fkm/h", heading, source.value, speed)
    return FusionStep(
        fused=_fused(sample, heading, speed, source),
        raw_speed_kmh=speed,
        raw_heading_deg=heading,
        first=True,
    )


def _fused(sample: RawSample, heading: float, speed: float, source: HeadingSource) -> FusedSample:
    heading = heading % 360.0
    if heading >= 360.0:
        heading = 0.0
    return FusedSample(
        latitude=sample.latitude,
        longitude=sample.longitude,
        accuracy_m=sample.accuracy_m,
        heading_deg=heading,
        speed_kmh=max(0.0, speed),
        source=source,
        timestamp_ms=sample.timestamp_ms,
    )
