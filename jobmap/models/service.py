# jobmap/models/service.py - Lifecycle owner for store, index, cache and query engine

import asyncio
from typing import List, Optional

from .cache import ResultCache
from .db import SEARCH_CACHE_TTL, _jobs_source, get_kv_store, logger
from .display import DisplayJob
from .perf import PerformanceMonitor
from .query import QueryEngine, QueryResult
from .records import RecordStore, source_from_setting
from .search_index import SearchIndex


class JobsService:
    """Explicitly constructed jobs engine with an init()/close() lifecycle."""

    def __init__(
        self,
        store: RecordStore,
        index: Optional[SearchIndex] = None,
        cache: Optional[ResultCache] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.monitor = monitor or store.monitor
        self.store = store
        self.index = index or SearchIndex(monitor=self.monitor)
        self.cache = cache or ResultCache(ttl=SEARCH_CACHE_TTL)
        self.engine = QueryEngine(self.store, self.index, self.cache, self.monitor)
        self._ready = False
        self._init_task: Optional[asyncio.Future] = None
        self._generation = 0

    @classmethod
    def from_config(cls, source=None, snapshots=None) -> "JobsService":
        """Build a service from environment settings."""
        if source is None:
            source = source_from_setting(_jobs_source())
        if snapshots is None:
            try:
                snapshots = get_kv_store()
            except Exception as exc:
                logger.warning("Snapshot storage unavailable: %s", exc)
                snapshots = None
        return cls(RecordStore(source, snapshots))

    @property
    def ready(self) -> bool:
        return self._ready

    async def init(self) -> None:
        """Load records and build the index; raises LoadError on fetch failure."""
        if self._ready:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize(self._generation))
        task = self._init_task
        try:
            await asyncio.shield(task)
        finally:
            if task.done() and self._init_task is task and (task.cancelled() or task.exception() is not None):
                self._init_task = None

    async def _initialize(self, generation: int) -> None:
        await self.store.load()
        await self.index.build_chunked(self.store.all())
        if generation != self._generation:
            logger.info("Discarding jobs init interrupted by close()")
            return
        self.cache.invalidate_all()
        self._ready = True
        self.monitor.summary()

    def close(self) -> None:
        """Drop all state; an in-flight init() is cancelled."""
        self._generation += 1
        task, self._init_task = self._init_task, None
        if task is not None and not task.done():
            task.cancel()
        self.cache.invalidate_all()
        self.index.clear()
        self.store.reset()
        self._ready = False

    def reindex(self) -> None:
        """Rebuild the search index and drop cached results."""
        self.index.rebuild()
        self.cache.invalidate_all()

    def job_count(self) -> int:
        return self.store.count()

    def query(self, text: Optional[str] = None, location: Optional[str] = None,
              limit: Optional[int] = None, offset: int = 0) -> QueryResult:
        return self.engine.query(text, location, limit, offset)

    def get_all_jobs(self, limit: Optional[int] = None, offset: int = 0) -> List[DisplayJob]:
        return self.engine.get_all_jobs(limit, offset)

    def get_jobs_by_location(self, location: str, limit: Optional[int] = None, offset: int = 0) -> List[DisplayJob]:
        return self.engine.get_jobs_by_location(location, limit, offset)

    def search_jobs(self, text: str, limit: Optional[int] = None, offset: int = 0) -> QueryResult:
        return self.engine.search_jobs(text, limit, offset)

    def search_jobs_by_location(self, text: str, location: str,
                                limit: Optional[int] = None, offset: int = 0) -> QueryResult:
        return self.engine.search_jobs_by_location(text, location, limit, offset)
