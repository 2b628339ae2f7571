# jobmap/models/query.py - Text search, location filter and pagination over job records

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .cache import ResultCache, make_key
from .db import IndexNotReadyError, logger
from .display import DisplayJob, to_display_jobs
from .perf import PerformanceMonitor
from .records import JobRecord, RecordStore
from .search_index import SearchIndex


@dataclass
class QueryResult:
    items: List[DisplayJob]
    total: int

    def to_dict(self) -> Dict:
        return {"items": [job.to_dict() for job in self.items], "total": self.total}


def normalize_query(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def normalize_location(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return name.strip().lower()


def paginate(results: Sequence[DisplayJob], limit: Optional[int] = None, offset: int = 0) -> List[DisplayJob]:
    start = max(0, int(offset or 0))
    if limit is None:
        return list(results[start:])
    return list(results[start:start + max(0, int(limit))])


def at_location(record: JobRecord, location: str) -> bool:
    return any(loc.is_valid and loc.matches(location) for loc in record.locations)


class QueryEngine:
    """Runs text search, then the location filter, then expansion and slicing.

    Full result lists are cached per normalized (query, location); pages are
    cut from the cached list, so every offset of a query shares one entry.
    """

    def __init__(
        self,
        store: RecordStore,
        index: SearchIndex,
        cache: ResultCache,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.store = store
        self.index = index
        self.cache = cache
        self.monitor = monitor or PerformanceMonitor()

    def query(
        self,
        text: Optional[str] = None,
        location: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> QueryResult:
        query = normalize_query(text)
        location_name = normalize_location(location)
        key = make_key(query, location_name)
        results = self.cache.get(key)
        if results is None:
            try:
                results = self._compute(query, location_name)
            except IndexNotReadyError as exc:
                logger.warning("Search skipped, index not ready: %s", exc)
                return QueryResult(items=[], total=0)
            self.cache.set(key, results)
        return QueryResult(items=paginate(results, limit, offset), total=len(results))

    def _compute(self, query: str, location_name: Optional[str]) -> List[DisplayJob]:
        if not self.store.loaded or not self.index.ready:
            raise IndexNotReadyError("jobs are not loaded yet")
        if query:
            candidates = [
                record
                for record in (self.store.resolve(ref.id) for ref in self.index.query(query))
                if record is not None
            ]
        else:
            candidates = list(self.store.all())
        if location_name is not None:
            candidates = [record for record in candidates if at_location(record, location_name)]
        with self.monitor.measure("search-transform"):
            return to_display_jobs(candidates, location_name)

    def get_all_jobs(self, limit: Optional[int] = None, offset: int = 0) -> List[DisplayJob]:
        return self.query(None, None, limit, offset).items

    def get_jobs_by_location(self, location: str, limit: Optional[int] = None, offset: int = 0) -> List[DisplayJob]:
        return self.query(None, location, limit, offset).items

    def search_jobs(self, text: str, limit: Optional[int] = None, offset: int = 0) -> QueryResult:
        return self.query(text, None, limit, offset)

    def search_jobs_by_location(
        self, text: str, location: str, limit: Optional[int] = None, offset: int = 0
    ) -> QueryResult:
        return self.query(text, location, limit, offset)
