"""Position sources: where raw samples come from.

A source offers a one-shot get_current_position() and a cancellable
watch() subscription. Callbacks always run on the event loop thread, so
the engine processes one sample at a time.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from tracker.errors import NmeaParseError, PositionError, PositionErrorKind
from tracker.nmea import NmeaAssembler
from tracker.samples import RawSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[RawSample], None]
ErrorCallback = Callable[[PositionError], None]


@dataclass(frozen=True, slots=True)
class AcquireOptions:
    """Options for acquiring a position."""
    high_accuracy: bool = True
    timeout_s: float = 10.0
    maximum_age_s: float = 0.0


class Subscription:
    """Handle for a continuous position stream.

    cancel() is synchronous and idempotent; after it returns no further
    callback is delivered.
    """

    def __init__(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
        canceller: Callable[[], None] | None = None,
    ):
        self.on_sample = on_sample
        self.on_error = on_error
        self._canceller = canceller
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def set_canceller(self, canceller: Callable[[], None]) -> None:
        self._canceller = canceller

    def deliver(self, sample: RawSample) -> None:
        if not self._cancelled:
            self.on_sample(sample)

    def fail(self, error: PositionError) -> None:
        if not self._cancelled:
            self.on_error(error)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._canceller is not None:
            self._canceller()


class PositionSource(Protocol):
    async def get_current_position(self, options: AcquireOptions) -> RawSample:
        """One fix, or raise PositionError."""

    def watch(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
        options: AcquireOptions,
    ) -> Subscription:
        """Start streaming samples; must be called inside a running loop."""


ReplayItem = RawSample | PositionError


class ReplaySource:
    """Replays a recorded list of samples (and errors) in timestamp order.

    The first item answers get_current_position(); the rest stream through
    watch(), paced by the sample timestamps divided by speedup (0 = as fast
    as possible). clock() exposes the replay's virtual time so speed and
    duration come out as recorded, whatever the pacing.
    """

    def __init__(
        self,
        items: Sequence[ReplayItem],
        speedup: float = 0.0,
        first_fix_delay_s: float = 0.0,
    ):
        self._items = list(items)
        self._speedup = speedup
        self._first_fix_delay = first_fix_delay_s
        self._index = 0
        self._virtual_t = 0.0
        self._task: asyncio.Task | None = None

    def clock(self) -> float:
        """Virtual time in seconds: timestamp of the last delivered sample."""
        return self._virtual_t

    @property
    def remaining(self) -> int:
        return len(self._items) - self._index

    def _advance_clock(self, sample: RawSample) -> None:
        self._virtual_t = sample.timestamp_ms / 1000.0

    async def get_current_position(self, options: AcquireOptions) -> RawSample:
        if self._first_fix_delay > 0:
            await asyncio.sleep(self._first_fix_delay)
        if self._index >= len(self._items):
            raise PositionError(PositionErrorKind.UNAVAILABLE, "replay exhausted")
        item = self._items[self._index]
        self._index += 1
        if isinstance(item, PositionError):
            raise item
        self._advance_clock(item)
        return item

    def watch(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
        options: AcquireOptions | None = None,
    ) -> Subscription:
        subscription = Subscription(on_sample, on_error)
        self._task = asyncio.get_running_loop().create_task(self._pump(subscription))
        subscription.set_canceller(self._task.cancel)
        return subscription

    async def _pump(self, subscription: Subscription) -> None:
        last_ts: float | None = None
        while self._index < len(self._items) and not subscription.cancelled:
            item = self._items[self._index]
            self._index += 1
            if isinstance(item, PositionError):
                subscription.fail(item)
                continue
            if self._speedup > 0 and last_ts is not None:
                delay = (item.timestamp_ms - last_ts) / 1000.0 / self._speedup
                if delay > 0:
                    await asyncio.sleep(delay)
            else:
                await asyncio.sleep(0)
            last_ts = item.timestamp_ms
            if subscription.cancelled:
                break
            self._advance_clock(item)
            subscription.deliver(item)

    async def wait_finished(self) -> None:
        """Wait until every item has been streamed (or the watch cancelled)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass


def _serial_error_kind(exc: Exception) -> PositionErrorKind:
    if getattr(exc, "errno", None) in (errno.EACCES, errno.EPERM):
        return PositionErrorKind.PERMISSION_DENIED
    return PositionErrorKind.UNAVAILABLE


class SerialNmeaSource:
    """Reads NMEA sentences from a serial GPS receiver.

    Blocking reads run in the default executor; parsed samples are
    delivered on the event loop.
    """

    def __init__(self, port: str = "/dev/ttyUSB0", baudrate: int = 9600, read_timeout_s: float = 1.0):
        self._port = port
        self._baudrate = baudrate
        self._read_timeout = read_timeout_s
        self._serial = None
        self._assembler = NmeaAssembler()
        self._task: asyncio.Task | None = None

    def open(self) -> None:
        import serial

        try:
            self._serial = serial.Serial(
                self._port,
                self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._read_timeout,
            )
        except serial.SerialException as e:
            raise PositionError(_serial_error_kind(e), f"{self._port}: {e}") from e
        logger.info("GPS receiver open: %s @ %d", self._port, self._baudrate)

    def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._serial is not None and self._serial.is_open:
            self._serial.close()
        self._serial = None

    async def _read_sample(self) -> RawSample | None:
        """Read one line; return a sample if it completed a fix."""
        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(None, self._serial.readline)
        except OSError as e:
            raise PositionError(PositionErrorKind.UNAVAILABLE, str(e)) from e
        if not raw:
            return None
        line = raw.decode("ascii", errors="replace").strip()
        if not line:
            return None
        try:
            return self._assembler.feed(line)
        except NmeaParseError as e:
            logger.debug("Ignoring bad NMEA line: %s", e)
            return None

    async def get_current_position(self, options: AcquireOptions) -> RawSample:
        if self._serial is None:
            self.open()
        while True:
            sample = await self._read_sample()
            if sample is not None:
                return sample

    def watch(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
        options: AcquireOptions | None = None,
    ) -> Subscription:
        if self._serial is None:
            self.open()
        subscription = Subscription(on_sample, on_error)
        self._task = asyncio.get_running_loop().create_task(self._pump(subscription))
        subscription.set_canceller(self._task.cancel)
        return subscription

    async def _pump(self, subscription: Subscription) -> None:
        while not subscription.cancelled:
            try:
                sample = await self._read_sample()
            except PositionError as e:
                subscription.fail(e)
                await asyncio.sleep(1.0)
                continue
            if sample is not None:
                subscription.deliver(sample)
