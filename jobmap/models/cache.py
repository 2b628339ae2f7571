# jobmap/models/cache.py - Time-limited memo of full query results

import json
import time
from typing import Callable, Dict, List, Optional, Tuple

from .db import SEARCH_CACHE_TTL
from .display import DisplayJob


def make_key(query: str, location: Optional[str] = None) -> str:
    """Serialize a normalized (query, location) pair; no location is ``null``."""
    return json.dumps([query, location], ensure_ascii=False)


class ResultCache:
    """Full, unpaginated result lists keyed by normalized query and location.

    Expired entries count as misses and are dropped when looked up.
    """

    def __init__(
        self,
        ttl: float = SEARCH_CACHE_TTL,
        max_entries: int = 128,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[DisplayJob]]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[List[DisplayJob]]:
        hit = self._entries.get(key)
        if hit is None:
            return None
        stored_at, results = hit
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return results

    def set(self, key: str, results: List[DisplayJob]) -> None:
        self._entries[key] = (self._clock(), list(results))
        self._prune()

    def invalidate_all(self) -> None:
        self._entries.clear()

    def _prune(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        # Drop oldest entries to keep memory bounded
        oldest = sorted(self._entries.items(), key=lambda kv: kv[1][0])[: len(self._entries) - self.max_entries]
        for key, _ in oldest:
            self._entries.pop(key, None)
