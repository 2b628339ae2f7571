import asyncio
import logging

import pytest

from conftest import SAMPLE_JOBS, StaticSource, build_service
from jobmap.models.cache import ResultCache
from jobmap.models.display import NO_LOCATION
from jobmap.models.records import RecordStore
from jobmap.models.service import JobsService


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _bulk_jobs(count):
    return [
        {
            "id": f"eng-{i}",
            "title": f"Platform Engineer {i}",
            "company": "Helvetia Cloud",
            "locations": [{"city": "Lausanne", "latitude": 46.52, "longitude": 6.63}],
        }
        for i in range(count)
    ]


def test_get_all_jobs_covers_every_record(service):
    jobs = service.get_all_jobs()
    assert len(jobs) == 6
    assert service.job_count() == 5
    assert [j.location for j in jobs if j.original_id in {"4", "5"}] == [NO_LOCATION, NO_LOCATION]


def test_search_is_case_and_whitespace_insensitive_and_cached(service):
    first = service.search_jobs("Java")
    second = service.search_jobs("  java ")
    assert first == second
    assert service.index.query_count == 1
    assert {job.original_id for job in first.items} == {"1", "3"}
    assert first.total == 3


def test_blank_query_behaves_like_no_query(service):
    blank = service.query("   ")
    assert blank.total == service.query(None).total == 6
    assert service.index.query_count == 0


def test_and_semantics(service):
    result = service.search_jobs("senior java")
    assert [job.original_id for job in result.items] == ["1"]


def test_location_filter_only_returns_matching_locations(service):
    jobs = service.get_jobs_by_location("Zürich")
    assert [job.id for job in jobs] == ["1-0", "3-1"]
    assert all("zürich" in job.location.lower() for job in jobs)


def test_location_filter_matches_address(service):
    jobs = service.get_jobs_by_location("hofwiesen")
    assert [job.id for job in jobs] == ["3-1"]


def test_search_by_location_combines_filters(service):
    result = service.search_jobs_by_location("developer", "basel")
    assert [job.id for job in result.items] == ["3-0"]
    assert result.total == 1
    assert service.search_jobs_by_location("python", "basel").total == 0


def test_location_filter_ignores_locations_without_coordinates(service):
    assert service.get_jobs_by_location("winterthur") == []


def test_pagination_pages_are_disjoint_and_consistent():
    service = build_service(_bulk_jobs(120))
    first = service.search_jobs("engineer", limit=50, offset=0)
    second = service.search_jobs("engineer", limit=50, offset=50)
    both = service.search_jobs("engineer", limit=100, offset=0)
    assert first.total == second.total == 120
    assert len(first.items) == len(second.items) == 50
    assert not {j.id for j in first.items} & {j.id for j in second.items}
    assert first.items + second.items == both.items
    assert service.index.query_count == 1


def test_pagination_edges(service):
    assert service.query(limit=2, offset=5).items == service.get_all_jobs()[5:]
    assert service.query(limit=2, offset=-3).items == service.get_all_jobs()[:2]
    assert service.query(limit=0).items == []
    assert service.query(limit=10, offset=50).items == []


def test_expired_cache_entry_triggers_recomputation():
    clock = FakeClock()
    service = build_service(cache=ResultCache(ttl=600, clock=clock))
    service.search_jobs("java")
    clock.now += 599
    service.search_jobs("java")
    assert service.index.query_count == 1
    clock.now += 1
    service.search_jobs("java")
    assert service.index.query_count == 2


def test_query_before_init_returns_empty_and_is_not_cached(caplog):
    service = JobsService(RecordStore(StaticSource(SAMPLE_JOBS)))
    with caplog.at_level(logging.WARNING, logger="jobmap"):
        result = service.search_jobs("java")
    assert result.items == [] and result.total == 0
    assert "index not ready" in caplog.text
    asyncio.run(service.init())
    assert service.search_jobs("java").total == 3


def test_reindex_drops_cached_results(service):
    service.search_jobs("java")
    service.reindex()
    assert len(service.cache) == 0
    service.search_jobs("java")
    assert service.index.query_count == 2


def test_init_is_idempotent_and_close_resets():
    source = StaticSource(SAMPLE_JOBS)
    service = JobsService(RecordStore(source))

    async def scenario():
        await asyncio.gather(service.init(), service.init())
        await service.init()

    asyncio.run(scenario())
    assert source.calls == 1
    assert service.ready
    service.close()
    assert not service.ready
    assert service.get_all_jobs() == []
    asyncio.run(service.init())
    assert source.calls == 2
    assert len(service.get_all_jobs()) == 6


class GatedSource(StaticSource):
    """Source whose fetch blocks until its gate is opened."""

    gate = None

    async def fetch(self):
        self.calls += 1
        await self.gate.wait()
        return self.payload


def test_close_during_init_cancels_it():
    source = GatedSource(SAMPLE_JOBS)
    service = JobsService(RecordStore(source))

    async def scenario():
        source.gate = asyncio.Event()
        pending = asyncio.ensure_future(service.init())
        while source.calls == 0:
            await asyncio.sleep(0)
        service.close()
        source.gate.set()
        with pytest.raises(asyncio.CancelledError):
            await pending
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert not service.ready
    assert not service.store.loaded
    assert service.get_all_jobs() == []

    async def reopen():
        source.gate = asyncio.Event()
        source.gate.set()
        await service.init()

    asyncio.run(reopen())
    assert service.ready
    assert source.calls == 2


def test_query_result_to_dict(service):
    payload = service.search_jobs("nurse").to_dict()
    assert payload["total"] == 1
    assert payload["items"][0]["id"] == "4-no-location"
    assert payload["items"][0]["originalId"] == "4"
