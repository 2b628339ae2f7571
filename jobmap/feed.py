"""Paged job feed state for listing and map views."""

from typing import List, Optional

from .models.db import LoadError, logger
from .models.display import DisplayJob

PAGE_SIZE = 50


class JobsFeed:
    """Current page state plus search, location and load-more operations.

    Every search or location change starts a new generation. A call that
    resolves after a newer one has started leaves the state untouched.
    """

    def __init__(self, service, page_size: int = PAGE_SIZE):
        self._service = service
        self.page_size = page_size
        self.jobs: List[DisplayJob] = []
        self.loading = False
        self.error: Optional[str] = None
        self.has_more = True
        self.total_jobs = 0
        self.initialized = False
        self.query = ""
        self.location: Optional[str] = None
        self._offset = 0
        self._generation = 0

    async def start(self, query: str = "", location: Optional[str] = None) -> None:
        self.query = query or ""
        self.location = location
        await self._refresh()

    async def search(self, query: str) -> None:
        """Replace the active query and go back to the first page."""
        self.query = query or ""
        await self._refresh()

    async def set_location(self, location: Optional[str]) -> None:
        self.location = location
        await self._refresh()

    async def load_more(self) -> None:
        """Append the next page for the active query and location."""
        if not self.initialized or self.loading or not self.has_more:
            return
        generation = self._generation
        query, location, offset = self.query, self.location, self._offset
        if not await self._begin(generation):
            return
        result = self._service.query(query, location, self.page_size, offset)
        self.jobs = self.jobs + result.items
        self._offset += self.page_size
        self.has_more = len(result.items) == self.page_size
        self.loading = False

    async def _refresh(self) -> None:
        self._generation += 1
        generation = self._generation
        query, location = self.query, self.location
        if not await self._begin(generation):
            return
        result = self._service.query(query, location, self.page_size, 0)
        self.jobs = list(result.items)
        self._offset = self.page_size
        self.total_jobs = result.total
        self.has_more = len(result.items) == self.page_size
        self.loading = False

    async def _begin(self, generation: int) -> bool:
        """Wait for the service; False when the call failed or was superseded."""
        self.loading = True
        self.error = None
        try:
            await self._service.init()
        except LoadError as exc:
            if generation == self._generation:
                logger.error("Error loading jobs: %s", exc)
                self.error = str(exc)
                self.loading = False
            return False
        self.initialized = True
        if generation != self._generation:
            logger.debug("Discarding superseded feed request (generation %d)", generation)
            return False
        return True
