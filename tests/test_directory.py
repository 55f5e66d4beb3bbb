"""Tests for location directories."""

import asyncio
import json

import pytest

from shared.geo import GeoPoint, destination_point
from tracker.backend import BackendError
from tracker.directory import (
    NEARBY_PATH,
    HttpLocationDirectory,
    InMemoryLocationDirectory,
    NearbyQuery,
    load_locations,
    location_from_dict,
)
from tracker.errors import DirectoryError
from tracker.samples import KnownLocation, OperationPhase

HERE = GeoPoint(41.0, 29.0)


def _loc(id, meters, bearing=0.0, type="DEPOT"):
    p = destination_point(HERE, bearing, meters / 1000.0)
    return KnownLocation(id=id, name=f"loc {id}", latitude=p.lat, longitude=p.lon, location_type=type)


def _query(phase=OperationPhase.TO_LOADING, radius=150.0):
    return NearbyQuery(latitude=HERE.lat, longitude=HERE.lon, radius_m=radius, phase=phase)


class TestInMemoryDirectory:
    def test_nearest_first_within_radius(self):
        d = InMemoryLocationDirectory([_loc("far", 120), _loc("near", 40, 90.0), _loc("out", 400)])
        matches = d.nearby(_query())
        assert [m.location.id for m in matches] == ["near", "far"]
        assert matches[0].distance_m == pytest.approx(40.0, rel=1e-4)
        assert matches[0].bearing_deg == pytest.approx(90.0, abs=0.01)

    def test_location_at_edge_of_radius(self):
        d = InMemoryLocationDirectory([_loc("edge", 100)])
        assert d.nearby(_query(radius=100.001))

    def test_phase_filters_type(self):
        d = InMemoryLocationDirectory([
            _loc("depot", 10, type="DEPOT"),
            _loc("dest", 20, type="DESTINATION"),
            _loc("fuel", 30, type="FUEL_STATION"),
            _loc("rest", 40, type="REST_AREA"),
        ])
        ids = lambda phase: [m.location.id for m in d.nearby(_query(phase))]
        assert ids(OperationPhase.AT_LOADING) == ["depot"]
        assert ids(OperationPhase.TO_UNLOADING) == ["dest"]
        assert ids(OperationPhase.REFUEL) == ["fuel"]
        assert ids(OperationPhase.BREAK) == ["rest"]

    def test_limit(self):
        d = InMemoryLocationDirectory([_loc(str(i), 10 * (i + 1)) for i in range(8)], limit=5)
        assert len(d.nearby(_query())) == 5

    def test_async_query(self):
        d = InMemoryLocationDirectory([_loc("a", 10)])
        matches = asyncio.run(d.query_nearby(_query()))
        assert matches[0].location.id == "a"


class TestLoading:
    def test_camel_case(self):
        loc = location_from_dict({
            "id": 7, "name": "Depot A", "latitude": "41.0", "longitude": 29.0,
            "locationType": "DEPOT", "contactPerson": "Ayse", "contactPhone": "555",
        })
        assert loc.id == "7"
        assert loc.latitude == 41.0
        assert loc.location_type == "DEPOT"
        assert loc.contact_person == "Ayse"

    def test_load_file(self, tmp_path):
        path = tmp_path / "locations.json"
        path.write_text(json.dumps({"locations": [
            {"id": "a", "name": "A", "latitude": 41.0, "longitude": 29.0, "location_type": "DEPOT"},
        ]}))
        locs = load_locations(path)
        assert locs[0].location_type == "DEPOT"


class FakeClient:
    def __init__(self, body=None, error=None):
        self.body = body
        self.error = error
        self.calls = []

    async def post_json(self, path, payload):
        self.calls.append((path, payload))
        if self.error is not None:
            raise self.error
        return self.body


class TestHttpDirectory:
    def test_query_and_parse(self):
        client = FakeClient({"success": True, "data": {"locations": [
            {"location": {"id": "d1", "name": "Depot", "latitude": 41.0, "longitude": 29.0,
                          "locationType": "DEPOT"}, "distance": 0.12, "bearing": 45},
            {"location": {"name": "broken"}, "distance": 0.2},
        ]}})
        q = NearbyQuery(latitude=41.0, longitude=29.0, radius_m=150.0,
                        phase=OperationPhase.TO_LOADING, operation_id="op-1")
        matches = asyncio.run(HttpLocationDirectory(client).query_nearby(q))

        path, payload = client.calls[0]
        assert path == NEARBY_PATH
        assert payload["operationId"] == "op-1"
        assert payload["radiusMeters"] == 150.0
        assert payload["phase"] == "TO_LOADING"
        assert len(matches) == 1
        assert matches[0].distance_m == pytest.approx(120.0)
        assert matches[0].bearing_deg == 45.0

    def test_empty_body(self):
        matches = asyncio.run(HttpLocationDirectory(FakeClient({})).query_nearby(_query()))
        assert matches == []

    def test_backend_error_wrapped(self):
        client = FakeClient(error=BackendError("HTTP 503", 503))
        with pytest.raises(DirectoryError):
            asyncio.run(HttpLocationDirectory(client).query_nearby(_query()))
