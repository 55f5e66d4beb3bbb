"""Known-location directory: "which registered places are near me?".

The backend owns the locations and the ranking; the scanner only
consumes an ordered nearest-first list. An in-memory directory with the
same phase filtering is provided for replay and offline use.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from shared.geo import GeoPoint, haversine_km, initial_bearing_deg
from tracker.backend import BackendClient, BackendError
from tracker.errors import DirectoryError
from tracker.samples import KnownLocation, OperationPhase, ProximityMatch

logger = logging.getLogger(__name__)

NEARBY_PATH = "/mobile/operations/nearby-locations"

# Location types relevant to each operation phase; phases not listed search all types
PHASE_LOCATION_TYPES: dict[OperationPhase, tuple[str, ...]] = {
    OperationPhase.TO_LOADING: ("DEPOT",),
    OperationPhase.AT_LOADING: ("DEPOT",),
    OperationPhase.TO_UNLOADING: ("DESTINATION",),
    OperationPhase.AT_UNLOADING: ("DESTINATION",),
    OperationPhase.REFUEL: ("FUEL_STATION",),
    OperationPhase.BREAK: ("REST_AREA",),
}


@dataclass(frozen=True, slots=True)
class NearbyQuery:
    latitude: float
    longitude: float
    radius_m: float
    phase: OperationPhase
    operation_id: str | None = None


class ProximityDirectory(Protocol):
    async def query_nearby(self, query: NearbyQuery) -> list[ProximityMatch]:
        """Locations within the radius, nearest first."""


def location_from_dict(data: dict) -> KnownLocation:
    """Build a KnownLocation from backend (camelCase) or snake_case JSON."""
    return KnownLocation(
        id=str(data["id"]),
        name=data.get("name", ""),
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        location_type=data.get("locationType", data.get("location_type", "")) or "",
        address=data.get("address", "") or "",
        contact_person=data.get("contactPerson", data.get("contact_person")),
        contact_phone=data.get("contactPhone", data.get("contact_phone")),
    )


def load_locations(path: Path) -> list[KnownLocation]:
    """Read a JSON list of locations."""
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        data = data.get("locations", [])
    return [location_from_dict(item) for item in data]


class InMemoryLocationDirectory:
    """Ranks a fixed set of locations by great-circle distance."""

    def __init__(self, locations: list[KnownLocation], limit: int = 5):
        self._locations = list(locations)
        self._limit = limit

    @property
    def locations(self) -> list[KnownLocation]:
        return list(self._locations)

    async def query_nearby(self, query: NearbyQuery) -> list[ProximityMatch]:
        return self.nearby(query)

    def nearby(self, query: NearbyQuery) -> list[ProximityMatch]:
        origin = GeoPoint(query.latitude, query.longitude)
        types = PHASE_LOCATION_TYPES.get(query.phase)
        matches = []
        for loc in self._locations:
            if types and loc.location_type not in types:
                continue
            distance_m = haversine_km(origin, loc.point) * 1000.0
            if distance_m <= query.radius_m:
                matches.append(ProximityMatch(
                    location=loc,
                    distance_m=distance_m,
                    bearing_deg=initial_bearing_deg(origin, loc.point),
                ))
        matches.sort(key=lambda m: m.distance_m)
        return matches[:self._limit]


class HttpLocationDirectory:
    """Asks the backend nearby-locations endpoint."""

    def __init__(self, client: BackendClient, path: str = NEARBY_PATH):
        self._client = client
        self._path = path

    async def query_nearby(self, query: NearbyQuery) -> list[ProximityMatch]:
        payload = {
            "operationId": query.operation_id,
            "latitude": query.latitude,
            "longitude": query.longitude,
            "radiusMeters": query.radius_m,
            "phase": query.phase.value,
        }
        try:
            body = await self._client.post_json(self._path, payload)
        except BackendError as e:
            raise DirectoryError(str(e)) from e

        items = (body.get("data") or {}).get("locations") or []
        matches = []
        for item in items:
            try:
                matches.append(ProximityMatch(
                    location=location_from_dict(item["location"]),
                    # backend reports kilometers
                    distance_m=float(item["distance"]) * 1000.0,
                    bearing_deg=float(item.get("bearing", 0.0)),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed nearby location %r: %s", item, e)
        return matches
