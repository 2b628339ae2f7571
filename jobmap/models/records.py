# jobmap/models/records.py - Job records, bulk sources and the in-memory record store

import asyncio
import json
import math
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from .db import JOBS_FETCH_TIMEOUT, SNAPSHOT_MAX_AGE_HOURS, LoadError, logger
from .perf import PerformanceMonitor

SNAPSHOT_DATA_KEY = "jobsData"
SNAPSHOT_TIMESTAMP_KEY = "jobsDataTimestamp"


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_number(value: Any) -> Optional[float]:
    """Return a finite float, or None when the value is missing or unusable."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


@dataclass(frozen=True)
class LocationRecord:
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        """A location can be placed on the map only with both coordinates."""
        return self.latitude is not None and self.longitude is not None

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match against city or address."""
        needle = needle.lower()
        return any(part is not None and needle in part.lower() for part in (self.city, self.address))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LocationRecord":
        return cls(
            city=_clean_str(raw.get("city")),
            region=_clean_str(raw.get("region")),
            country=_clean_str(raw.get("country")),
            address=_clean_str(raw.get("address")),
            postal_code=_clean_str(raw.get("postal_code") or raw.get("postalCode")),
            latitude=_coerce_number(raw.get("latitude")),
            longitude=_coerce_number(raw.get("longitude")),
        )


@dataclass(frozen=True)
class JobRecord:
    id: str
    title: Optional[str] = None
    company: Optional[str] = None
    locations: tuple = ()
    categories: tuple = ()
    employment_types: tuple = ()
    workload_min_percent: Optional[float] = None
    workload_max_percent: Optional[float] = None
    language: Optional[str] = None
    posted_at: Optional[str] = None
    valid_until: Optional[str] = None
    link: Optional[str] = None
    apply_link: Optional[str] = None
    source_file: Optional[str] = None

    @property
    def valid_locations(self) -> List[LocationRecord]:
        return [loc for loc in self.locations if loc.is_valid]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], position: int = 0) -> "JobRecord":
        """Normalize one raw job payload; a missing id becomes ``job-{position}``."""
        raw_locations = raw.get("locations")
        if not isinstance(raw_locations, (list, tuple)):
            raw_locations = ()
        locations = tuple(LocationRecord.from_dict(loc) for loc in raw_locations if isinstance(loc, dict))
        return cls(
            id=_clean_str(raw.get("id")) or f"job-{position}",
            title=_clean_str(raw.get("title")),
            company=_clean_str(raw.get("company")),
            locations=locations,
            categories=tuple(_str_list(raw.get("categories"))),
            employment_types=tuple(_str_list(raw.get("employment_types") or raw.get("employmentTypes"))),
            workload_min_percent=_coerce_number(raw.get("workload_min_percent")),
            workload_max_percent=_coerce_number(raw.get("workload_max_percent")),
            language=_clean_str(raw.get("language")),
            posted_at=_clean_str(raw.get("posted_at") or raw.get("postedAt")),
            valid_until=_clean_str(raw.get("valid_until") or raw.get("validUntil")),
            link=_clean_str(raw.get("link")),
            apply_link=_clean_str(raw.get("apply_link") or raw.get("applyLink")),
            source_file=_clean_str(raw.get("source_file") or raw.get("sourceFile")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["locations"] = [asdict(loc) for loc in self.locations]
        for key in ("categories", "employment_types"):
            data[key] = list(data[key])
        return data


def parse_jobs_payload(payload: Any) -> List[JobRecord]:
    """Accept either ``[job, ...]`` or ``{"jobs": [job, ...]}``."""
    if isinstance(payload, dict):
        payload = payload.get("jobs") or []
    if not isinstance(payload, list):
        raise LoadError(f"Unexpected jobs payload of type {type(payload).__name__}")
    records: List[JobRecord] = []
    for position, raw in enumerate(payload):
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object job entry at position %d", position)
            continue
        records.append(JobRecord.from_dict(raw, position))
    return records

# ------------------------- Bulk Sources --------------------------------------

class HttpJobSource:
    """Fetch the bulk jobs JSON over HTTP."""

    def __init__(self, url: str, *, timeout: float = JOBS_FETCH_TIMEOUT, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            raise LoadError(
                f"Failed to load jobs data: HTTP {exc.response.status_code} from {self.url}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise LoadError(f"Failed to load jobs data from {self.url}: {exc}") from exc


class FileJobSource:
    """Read the bulk jobs JSON from a local file."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Any:
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    async def fetch(self) -> Any:
        try:
            return await asyncio.to_thread(self._read)
        except (OSError, ValueError) as exc:
            raise LoadError(f"Failed to load jobs data from {self.path}: {exc}") from exc


def source_from_setting(value: str):
    """Pick an HTTP or file source for a configured URL or path."""
    if value.startswith(("http://", "https://")):
        return HttpJobSource(value)
    return FileJobSource(value)

# ------------------------- Record Store --------------------------------------

class RecordStore:
    """Holds the job records for the lifetime of the process.

    Records come from a fresh persisted snapshot when one exists, otherwise
    from the bulk source, after which a new snapshot is written. Snapshot
    failures never fail a load; they only force a fetch.
    """

    def __init__(
        self,
        source,
        snapshots=None,
        *,
        max_age_hours: float = SNAPSHOT_MAX_AGE_HOURS,
        clock: Callable[[], float] = time.time,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.source = source
        self.snapshots = snapshots
        self.max_age_ms = max_age_hours * 60 * 60 * 1000
        self._clock = clock
        self.monitor = monitor or PerformanceMonitor()
        self._records: List[JobRecord] = []
        self._loaded = False
        self._inflight: Optional[asyncio.Future] = None
        self.fetch_count = 0

    @property
    def loaded(self) -> bool:
        return self._loaded

    def all(self) -> Sequence[JobRecord]:
        return self._records

    def count(self) -> int:
        return len(self._records)

    def resolve(self, doc_id: str) -> Optional[JobRecord]:
        """Map an index document id (``{record id}_{position}``) to its record."""
        record_id, sep, position = doc_id.rpartition("_")
        if not sep:
            return None
        try:
            index = int(position)
        except ValueError:
            return None
        if not 0 <= index < len(self._records):
            return None
        record = self._records[index]
        return record if record.id == record_id else None

    async def load(self) -> None:
        """Load records once; concurrent callers share the in-flight load."""
        if self._loaded:
            return
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._perform_load())
        task = self._inflight
        try:
            await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task and (task.cancelled() or task.exception() is not None):
                self._inflight = None

    def reset(self) -> None:
        task, self._inflight = self._inflight, None
        if task is not None and not task.done():
            task.cancel()
        self._records = []
        self._loaded = False

    async def _perform_load(self) -> None:
        with self.monitor.measure("data-load"):
            logger.info("Loading jobs data...")
            cached = await asyncio.to_thread(self._read_snapshot)
            if cached is not None:
                self._records = cached
                self._loaded = True
                logger.info("Loaded %d jobs from snapshot", len(cached))
                return

            self.fetch_count += 1
            with self.monitor.measure("fetch-request"):
                payload = await self.source.fetch()
            records = parse_jobs_payload(payload)
            self._records = records
            self._loaded = True
            with_locations = sum(1 for r in records if r.valid_locations)
            logger.info(
                "Loaded %d jobs from source (%d with valid locations, %d without)",
                len(records),
                with_locations,
                len(records) - with_locations,
            )
            await asyncio.to_thread(self._write_snapshot, records)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _read_snapshot(self) -> Optional[List[JobRecord]]:
        if self.snapshots is None:
            return None
        try:
            with self.monitor.measure("snapshot-read"):
                data = self.snapshots.get(SNAPSHOT_DATA_KEY)
                stamp = self.snapshots.get(SNAPSHOT_TIMESTAMP_KEY)
                if not data or not stamp:
                    return None
                age = self._now_ms() - int(stamp)
                if age >= self.max_age_ms:
                    logger.info("Jobs snapshot expired (%.1fh old)", age / 3_600_000)
                    self.snapshots.delete(SNAPSHOT_DATA_KEY)
                    self.snapshots.delete(SNAPSHOT_TIMESTAMP_KEY)
                    return None
                return parse_jobs_payload(json.loads(data))
        except Exception as exc:
            logger.warning("Failed to read jobs snapshot: %s", exc)
            return None

    def _write_snapshot(self, records: List[JobRecord]) -> None:
        if self.snapshots is None:
            return
        try:
            with self.monitor.measure("snapshot-write"):
                payload = json.dumps([r.to_dict() for r in records], ensure_ascii=False)
                self.snapshots.set(SNAPSHOT_DATA_KEY, payload)
                self.snapshots.set(SNAPSHOT_TIMESTAMP_KEY, str(self._now_ms()))
        except Exception as exc:
            logger.warning("Failed to write jobs snapshot: %s", exc)
