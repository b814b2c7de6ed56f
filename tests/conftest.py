"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is on path when running tests without installing
root = Path(__file__).resolve().parent.parent
if str(root) not in sys.path:
    sys.path.insert(0, str(root))


class FakeClock:
    """Manually driven monotonic clock; ``sleep`` advances it instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTimezoneEngine:
    """Stands in for TimezoneFinder; answers from a fixed table."""

    def __init__(self, zones=None, default=None):
        self.zones = zones or {}
        self.default = default
        self.calls = []

    def timezone_at(self, *, lng: float, lat: float):
        self.calls.append((lat, lng))
        return self.zones.get((round(lat, 2), round(lng, 2)), self.default)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timezone_engine() -> FakeTimezoneEngine:
    return FakeTimezoneEngine(
        zones={(40.64, -73.78): "America/New_York", (51.47, -0.45): "Europe/London"},
    )


# Trimmed version of a real api.aviationapi.com response
KJFK_RECORD = {
    "site_number": "15793.*A",
    "type": "AIRPORT",
    "facility_name": "JOHN F KENNEDY INTL",
    "faa_ident": "JFK",
    "icao_ident": "KJFK",
    "region": "AEA",
    "district_office": "NYC",
    "state": "NY",
    "state_full": "NEW YORK",
    "county": "QUEENS",
    "city": "NEW YORK",
    "ownership": "PU",
    "use": "PU",
    "latitude": "40-38-23.7400N",
    "latitude_sec": "146303.7400N",
    "longitude": "073-46-43.2930W",
    "longitude_sec": "265603.2930W",
    "elevation": "13",
    "magnetic_variation": "13W",
    "control_tower": "Y",
    "unicom": "122.950",
    "effective_date": "11/04/2021",
}


@pytest.fixture
def kjfk_payload() -> dict:
    return {"KJFK": [dict(KJFK_RECORD)]}
