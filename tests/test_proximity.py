"""Tests for the proximity scanner."""

import asyncio

import pytest

from tracker.config import ProximityConfig
from tracker.errors import DirectoryError
from tracker.proximity import ProximityScanner
from tracker.samples import KnownLocation, OperationPhase, ProximityMatch

FAST = ProximityConfig(poll_interval_ms=10, popup_duration_ms=20, fade_ms=10)


def _match(id, distance=50.0):
    loc = KnownLocation(id=id, name=f"Depot {id}", latitude=41.0, longitude=29.0, location_type="DEPOT")
    return ProximityMatch(location=loc, distance_m=distance, bearing_deg=0.0)


class ScriptedDirectory:
    """Answers each query with the next scripted response ([] when exhausted)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.queries = []

    async def query_nearby(self, query):
        self.queries.append(query)
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return response


def _scanner(directory, config=FAST, **kwargs):
    scanner = ProximityScanner(directory, config, operation_id="op-1", **kwargs)
    scanner.update_position(41.0, 29.0)
    scanner.set_phase(OperationPhase.TO_LOADING)
    return scanner


async def _scan_all(scanner, n):
    for _ in range(n):
        await scanner.scan_once()


class TestDedup:
    def test_same_nearest_shown_once(self):
        a = _match("a")
        shown = []
        scanner = _scanner(ScriptedDirectory([a], [a], [a]), on_shown=shown.append)

        async def run():
            await _scan_all(scanner, 3)
            scanner.close()

        asyncio.run(run())
        assert shown == [a]
        assert scanner.scan_count == 3

    def test_reentry_shows_again(self):
        a = _match("a")
        shown = []
        scanner = _scanner(ScriptedDirectory([a], [a], [], [a], [a]), on_shown=shown.append)

        async def run():
            await _scan_all(scanner, 5)
            scanner.close()

        asyncio.run(run())
        assert shown == [a, a]

    def test_new_nearest_replaces(self):
        a, b = _match("a", 80.0), _match("b", 30.0)
        shown = []
        scanner = _scanner(ScriptedDirectory([a], [b, a]), on_shown=shown.append)

        async def run():
            await _scan_all(scanner, 2)
            active = scanner.active_match
            scanner.close()
            return active

        assert asyncio.run(run()) == b
        assert shown == [a, b]
        assert scanner.last_shown_id == "b"

    def test_failure_keeps_dedup(self):
        a = _match("a")
        shown = []
        scanner = _scanner(
            ScriptedDirectory([a], DirectoryError("HTTP 503"), [a]),
            on_shown=shown.append,
        )

        async def run():
            await _scan_all(scanner, 3)
            scanner.close()

        asyncio.run(run())
        assert shown == [a]
        assert scanner.failure_count == 1
        assert scanner.last_shown_id == "a"

    def test_needs_position_and_phase(self):
        directory = ScriptedDirectory([_match("a")])
        scanner = ProximityScanner(directory, FAST)
        assert asyncio.run(scanner.scan_once()) is None
        scanner.update_position(41.0, 29.0)
        assert asyncio.run(scanner.scan_once()) is None
        assert directory.queries == []

    def test_query_contents(self):
        directory = ScriptedDirectory()
        scanner = _scanner(directory, ProximityConfig(radius_m=250.0))
        scanner.update_position(41.5, 29.5)
        asyncio.run(scanner.scan_once())
        q = directory.queries[0]
        assert (q.latitude, q.longitude) == (41.5, 29.5)
        assert q.radius_m == 250.0
        assert q.phase is OperationPhase.TO_LOADING
        assert q.operation_id == "op-1"


class TestTimers:
    def test_auto_dismiss_then_clear(self):
        cleared = []
        scanner = _scanner(ScriptedDirectory([_match("a")]), on_cleared=lambda: cleared.append(1))

        async def run():
            await scanner.scan_once()
            states = [(scanner.visible, scanner.active_match is not None)]
            await asyncio.sleep(0.025)
            states.append((scanner.visible, scanner.active_match is not None))
            await asyncio.sleep(0.1)
            states.append((scanner.visible, scanner.active_match is not None))
            return states

        states = asyncio.run(run())
        assert states[0] == (True, True)
        assert states[-1] == (False, False)
        assert cleared == [1]
        assert not scanner.has_pending_timer

    def test_new_match_replaces_pending_timer(self):
        cleared = []
        scanner = _scanner(ScriptedDirectory([_match("a")], [_match("b")]),
                           on_cleared=lambda: cleared.append(1))

        async def run():
            await scanner.scan_once()
            await scanner.scan_once()
            assert scanner.active_match.location.id == "b"
            await asyncio.sleep(0.15)

        asyncio.run(run())
        assert cleared == [1]

    def test_dismiss(self):
        scanner = _scanner(ScriptedDirectory([_match("a")]))

        async def run():
            await scanner.scan_once()
            scanner.dismiss()
            hidden = (scanner.visible, scanner.active_match is not None)
            await asyncio.sleep(0.05)
            return hidden

        assert asyncio.run(run()) == (False, True)
        assert scanner.active_match is None

    def test_close_cancels_timer(self):
        scanner = _scanner(ScriptedDirectory([_match("a")]))

        async def run():
            await scanner.scan_once()
            assert scanner.has_pending_timer
            scanner.close()
            await asyncio.sleep(0.05)

        asyncio.run(run())
        assert not scanner.has_pending_timer
        # nobody hid it: close only stops timers
        assert scanner.visible


class TestPolling:
    def test_enable_polls_until_disabled(self):
        scanner = _scanner(ScriptedDirectory())

        async def run():
            scanner.enable()
            scanner.enable()
            assert scanner.running
            await asyncio.sleep(0.06)
            scanner.disable()
            count = scanner.scan_count
            await asyncio.sleep(0.03)
            return count

        count = asyncio.run(run())
        assert count >= 2
        assert scanner.scan_count == count
        assert not scanner.running
