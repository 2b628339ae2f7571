import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from jobmap.models.records import RecordStore
from jobmap.models.service import JobsService


def _loc(city, lat, lon, address=None):
    return {"city": city, "address": address, "latitude": lat, "longitude": lon}


SAMPLE_JOBS = [
    {
        "id": "1",
        "title": "Senior Java Developer",
        "company": "Acme",
        "categories": ["IT", "Backend"],
        "locations": [_loc("Zürich", 47.37, 8.54, address="Bahnhofstrasse 1")],
        "link": "https://example.com/jobs/1",
    },
    {
        "id": "2",
        "title": "Senior Python Engineer",
        "company": "Globex",
        "categories": ["IT"],
        "locations": [_loc("Bern", 46.94, 7.44, address="")],
    },
    {
        "id": "3",
        "title": "Java Developer",
        "company": "Initech",
        "categories": ["IT"],
        "locations": [
            _loc("Basel", 47.55, 7.58),
            _loc("Zürich Oerlikon", 47.41, 8.54, address="Hofwiesenstrasse 5"),
        ],
    },
    {
        "id": "4",
        "title": "Nurse",
        "company": "Spital Bern",
        "categories": ["Health"],
        "locations": [],
    },
    {
        "id": "5",
        "title": "Data Analyst",
        "company": "Zürich Insurance",
        "categories": ["Finance"],
        "locations": [_loc("Winterthur", 47.5, float("nan"))],
    },
]


class StaticSource:
    """Bulk source returning a fixed payload and counting fetches."""

    def __init__(self, payload, error=None):
        self.payload = payload
        self.error = error
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.payload


def build_service(payload=None, **kwargs) -> JobsService:
    """Return a service over payload with records loaded and indexed."""
    store = RecordStore(StaticSource(SAMPLE_JOBS if payload is None else payload))
    service = JobsService(store, **kwargs)
    asyncio.run(service.init())
    return service


@pytest.fixture
def service():
    return build_service()
