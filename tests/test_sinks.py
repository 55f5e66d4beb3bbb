"""Tests for telemetry sinks."""

import asyncio

from tracker.backend import BackendError
from tracker.samples import TelemetryRecord
from tracker.sinks import GPS_LOG_PATH, CsvTelemetrySink, FanOutSink, HttpTelemetrySink
from tracker.telemetry import read_records_csv


def _record(**kwargs):
    data = dict(latitude=41.0, longitude=29.0, accuracy_m=4.0, heading_deg=90.0,
                speed_kmh=30.0, timestamp_ms=1704110400000.0, operation_id="op-1")
    data.update(kwargs)
    return TelemetryRecord(**data)


class FakeClient:
    def __init__(self, body=None, error=None):
        self.body = body if body is not None else {"success": True}
        self.error = error
        self.calls = []

    async def post_json(self, path, payload):
        self.calls.append((path, payload))
        if self.error is not None:
            raise self.error
        return self.body


class FailingSink:
    async def send(self, record):
        raise RuntimeError("boom")


class TestHttpSink:
    def test_posts_payload(self):
        client = FakeClient()
        rec = _record()
        assert asyncio.run(HttpTelemetrySink(client).send(rec))
        path, payload = client.calls[0]
        assert path == GPS_LOG_PATH
        assert payload == rec.to_payload()

    def test_backend_rejects(self):
        assert not asyncio.run(HttpTelemetrySink(FakeClient({"success": False})).send(_record()))

    def test_backend_error(self):
        client = FakeClient(error=BackendError("HTTP 500", 500))
        assert not asyncio.run(HttpTelemetrySink(client).send(_record()))


class TestCsvSink:
    def test_opens_lazily_and_writes(self, tmp_path):
        sink = CsvTelemetrySink(tmp_path)
        records = [_record(), _record(latitude=41.1)]

        async def run():
            for r in records:
                assert await sink.send(r)

        asyncio.run(run())
        sink.close()
        assert sink.path.parent == tmp_path
        assert [r.id for r in read_records_csv(sink.path)] == [r.id for r in records]


class TestFanOut:
    def test_any_success(self):
        client = FakeClient()
        sink = FanOutSink(FailingSink(), HttpTelemetrySink(client))
        assert asyncio.run(sink.send(_record()))
        assert len(client.calls) == 1

    def test_all_fail(self):
        sink = FanOutSink(FailingSink(), HttpTelemetrySink(FakeClient(error=BackendError("x"))))
        assert not asyncio.run(sink.send(_record()))
