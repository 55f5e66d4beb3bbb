"""Tests for position sources and subscriptions."""

import asyncio
import errno

import pytest
import serial

from tracker.errors import PositionError, PositionErrorKind
from tracker.nmea import format_gga, format_rmc
from tracker.samples import RawSample
from tracker.sources import AcquireOptions, ReplaySource, SerialNmeaSource, Subscription

OPTS = AcquireOptions()


def _s(ts, lat=35.0):
    return RawSample(latitude=lat, longitude=135.0, accuracy_m=5.0, timestamp_ms=ts)


class TestSubscription:
    def test_cancel_is_idempotent(self):
        calls = []
        sub = Subscription(lambda s: None, lambda e: None, canceller=lambda: calls.append(1))
        sub.cancel()
        sub.cancel()
        assert sub.cancelled
        assert calls == [1]

    def test_no_delivery_after_cancel(self):
        got, errors = [], []
        sub = Subscription(got.append, errors.append)
        sub.deliver(_s(0))
        sub.cancel()
        sub.deliver(_s(1))
        sub.fail(PositionError(PositionErrorKind.UNAVAILABLE))
        assert len(got) == 1
        assert errors == []


class TestReplaySource:
    def test_first_fix_and_clock(self):
        src = ReplaySource([_s(5000.0), _s(6000.0)])
        first = asyncio.run(src.get_current_position(OPTS))
        assert first.timestamp_ms == 5000.0
        assert src.clock() == 5.0
        assert src.remaining == 1

    def test_empty_is_unavailable(self):
        with pytest.raises(PositionError) as exc:
            asyncio.run(ReplaySource([]).get_current_position(OPTS))
        assert exc.value.kind is PositionErrorKind.UNAVAILABLE

    def test_error_as_first_item(self):
        src = ReplaySource([PositionError(PositionErrorKind.PERMISSION_DENIED)])
        with pytest.raises(PositionError) as exc:
            asyncio.run(src.get_current_position(OPTS))
        assert exc.value.kind is PositionErrorKind.PERMISSION_DENIED

    def test_watch_streams_in_order(self):
        err = PositionError(PositionErrorKind.UNAVAILABLE, "tunnel")
        src = ReplaySource([_s(0), _s(1000), err, _s(2000)])

        async def run():
            got, errors, clocks = [], [], []
            await src.get_current_position(OPTS)

            def on_sample(s):
                got.append(s.timestamp_ms)
                clocks.append(src.clock())

            src.watch(on_sample, errors.append, OPTS)
            await src.wait_finished()
            return got, errors, clocks

        got, errors, clocks = asyncio.run(run())
        assert got == [1000.0, 2000.0]
        assert errors == [err]
        assert clocks == [1.0, 2.0]

    def test_cancel_stops_stream(self):
        src = ReplaySource([_s(i * 1000.0) for i in range(10)])

        async def run():
            got = []
            sub = None

            def on_sample(s):
                got.append(s)
                if len(got) == 2:
                    sub.cancel()

            sub = src.watch(on_sample, lambda e: None, OPTS)
            await src.wait_finished()
            return got, sub

        got, sub = asyncio.run(run())
        assert len(got) == 2
        assert sub.cancelled

    def test_paced_replay(self):
        src = ReplaySource([_s(0), _s(20.0), _s(40.0)], speedup=1.0)

        async def run():
            got = []
            loop = asyncio.get_running_loop()
            t0 = loop.time()
            src.watch(got.append, lambda e: None, OPTS)
            await src.wait_finished()
            return got, loop.time() - t0

        got, elapsed = asyncio.run(run())
        assert len(got) == 3
        assert elapsed >= 0.035


class FakeSerial:
    def __init__(self, lines):
        self._lines = list(lines)
        self.is_open = True

    def readline(self):
        if self._lines:
            return self._lines.pop(0)
        return b""

    def close(self):
        self.is_open = False


def _nmea_lines():
    from datetime import datetime, timezone

    dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    s = RawSample(latitude=41.0, longitude=29.0, accuracy_m=5.0, timestamp_ms=0.0,
                  speed_mps=3.0, heading_deg=90.0)
    return [
        b"\r\n",
        b"$GPGGA,garbage*00\r\n",
        (format_gga(s, dt) + "\r\n").encode(),
        (format_rmc(s, dt) + "\r\n").encode(),
    ]


class TestSerialNmeaSource:
    def test_permission_denied(self, monkeypatch):
        def deny(*args, **kwargs):
            raise serial.SerialException(errno.EACCES, "Permission denied")

        monkeypatch.setattr(serial, "Serial", deny)
        with pytest.raises(PositionError) as exc:
            SerialNmeaSource("/dev/ttyFAKE").open()
        assert exc.value.kind is PositionErrorKind.PERMISSION_DENIED

    def test_missing_port_unavailable(self, monkeypatch):
        def missing(*args, **kwargs):
            raise serial.SerialException(errno.ENOENT, "No such file")

        monkeypatch.setattr(serial, "Serial", missing)
        with pytest.raises(PositionError) as exc:
            SerialNmeaSource("/dev/ttyFAKE").open()
        assert exc.value.kind is PositionErrorKind.UNAVAILABLE

    def test_first_fix_skips_noise(self, monkeypatch):
        monkeypatch.setattr(serial, "Serial", lambda *a, **kw: FakeSerial(_nmea_lines()))
        src = SerialNmeaSource("/dev/ttyFAKE")
        fix = asyncio.run(src.get_current_position(OPTS))
        src.close()
        # GGA-only until the first RMC is seen
        assert fix.latitude == pytest.approx(41.0, abs=1e-6)
        assert fix.speed_mps is None

    def test_watch_delivers_rmc(self, monkeypatch):
        monkeypatch.setattr(serial, "Serial", lambda *a, **kw: FakeSerial(_nmea_lines()))
        src = SerialNmeaSource("/dev/ttyFAKE")

        async def run():
            got = []
            sub = src.watch(got.append, lambda e: None, OPTS)
            for _ in range(200):
                if len(got) >= 2:
                    break
                await asyncio.sleep(0.01)
            sub.cancel()
            src.close()
            return got

        got = asyncio.run(run())
        assert len(got) == 2
        assert got[1].heading_deg == pytest.approx(90.0)
        assert got[1].speed_mps == pytest.approx(3.0, abs=0.06)
