"""Tests for the reference-counted resource registry."""

import asyncio

from tracker.resources import ResourceRegistry


class Tracker:
    def __init__(self):
        self.loads = 0
        self.closed = []

    async def load(self):
        self.loads += 1
        await asyncio.sleep(0.01)
        return f"resource-{self.loads}"

    async def close(self, value):
        self.closed.append(value)


class TestResourceRegistry:
    def test_concurrent_loads_share_one(self):
        reg = ResourceRegistry()
        tr = Tracker()

        async def run():
            a = reg.acquire("http", tr.load, tr.close)
            b = reg.acquire("http", tr.load, tr.close)
            return a, b, await asyncio.gather(a.ensure_loaded(), b.ensure_loaded(), a.ensure_loaded())

        a, b, values = asyncio.run(run())
        assert a is b
        assert a.refs == 2
        assert tr.loads == 1
        assert values == ["resource-1"] * 3

    def test_last_release_closes(self):
        reg = ResourceRegistry()
        tr = Tracker()

        async def run():
            h1 = reg.acquire("http", tr.load, tr.close)
            h2 = reg.acquire("http", tr.load, tr.close)
            await h1.ensure_loaded()
            await h1.release()
            assert tr.closed == []
            assert h2.loaded
            await h2.release()
            return h2

        h = asyncio.run(run())
        assert tr.closed == ["resource-1"]
        assert not h.loaded
        assert h.refs == 0

    def test_reload_after_close(self):
        reg = ResourceRegistry()
        tr = Tracker()

        async def run():
            h = reg.acquire("http", tr.load, tr.close)
            await h.ensure_loaded()
            await h.release()
            h = reg.acquire("http", tr.load, tr.close)
            return await h.ensure_loaded()

        assert asyncio.run(run()) == "resource-2"

    def test_release_unloaded_does_not_close(self):
        reg = ResourceRegistry()
        tr = Tracker()

        async def run():
            h = reg.acquire("http", tr.load, tr.close)
            await h.release()
            await h.release()
            return h

        h = asyncio.run(run())
        assert tr.closed == []
        assert h.refs == 0

    def test_lookup(self):
        reg = ResourceRegistry()
        assert "x" not in reg
        h = reg.acquire("x", Tracker().load)
        assert "x" in reg
        assert reg.get("x") is h
        assert reg.get("y") is None
