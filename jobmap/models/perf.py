# jobmap/models/perf.py - Named timers for load, index and query steps

import time
from collections import deque
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from .db import logger

# Timer name fragments grouped for the summary line.
_CATEGORIES = {
    "Data Loading": ("data-load", "snapshot", "fetch"),
    "Search": ("index-build", "search-execution"),
    "Transform": ("transform",),
}


class PerformanceMonitor:
    """Collect durations for named operations and report them through logging."""

    def __init__(
        self,
        enabled: bool = True,
        clock: Callable[[], float] = time.perf_counter,
        max_samples: int = 1000,
    ):
        self.enabled = enabled
        self._clock = clock
        self._running: Dict[str, float] = {}
        self._durations = deque(maxlen=max_samples)

    def start(self, name: str) -> None:
        if not self.enabled:
            return
        if name in self._running:
            logger.warning("Timer %s is already running", name)
            return
        self._running[name] = self._clock()

    def stop(self, name: str) -> Optional[float]:
        """Stop a timer and return its duration in milliseconds."""
        if not self.enabled:
            return None
        started = self._running.pop(name, None)
        if started is None:
            logger.warning("Timer %s not found or already ended", name)
            return None
        duration = (self._clock() - started) * 1000.0
        self._durations.append((name, duration))
        logger.debug("%s: %.2fms", name, duration)
        return duration

    @contextmanager
    def measure(self, name: str):
        self.start(name)
        try:
            yield
        finally:
            self.stop(name)

    def durations(self, name: Optional[str] = None) -> List[float]:
        return [d for n, d in self._durations if name is None or n == name]

    def summary(self) -> Dict[str, float]:
        """Return total milliseconds per category and log them."""
        totals: Dict[str, float] = {}
        for category, fragments in _CATEGORIES.items():
            matched = [d for n, d in self._durations if any(f in n.lower() for f in fragments)]
            if matched:
                totals[category] = sum(matched)
        for category, total in totals.items():
            logger.info("%s: %.2fms", category, total)
        return totals

    def clear(self) -> None:
        self._running.clear()
        self._durations.clear()
