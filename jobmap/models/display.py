# jobmap/models/display.py - Listing/map projections of job records

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from .records import JobRecord, LocationRecord

NO_TITLE = "No Title"
NO_COMPANY = "Unknown Company"
NO_LOCATION = "Location not specified"
NO_SALARY = "Salary not specified"
DEFAULT_LOGO = "/globe.svg"


@dataclass(frozen=True)
class DisplayJob:
    """One job at one location, ready for the listing and the map."""

    id: str
    original_id: str
    title: str
    company: str
    location: str
    latitude: float
    longitude: float
    link: Optional[str]
    salary: str
    tags: tuple
    logo: str

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "originalId": self.original_id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "link": self.link,
            "salary": self.salary,
            "tags": list(self.tags),
            "logo": self.logo,
        }


def format_location(location: LocationRecord) -> str:
    """Return "address, city", or whichever of the two is present."""
    parts = [part for part in (location.address, location.city) if part]
    return ", ".join(parts) if parts else NO_LOCATION


def _claim_id(base: str, used: Set[str]) -> str:
    candidate = base
    counter = 0
    while candidate in used:
        counter += 1
        candidate = f"{base}-{counter}"
    used.add(candidate)
    return candidate


def _project(record: JobRecord, job_id: str, location: Optional[LocationRecord]) -> DisplayJob:
    return DisplayJob(
        id=job_id,
        original_id=record.id,
        title=record.title or NO_TITLE,
        company=record.company or NO_COMPANY,
        location=format_location(location) if location else NO_LOCATION,
        latitude=location.latitude if location else 0.0,
        longitude=location.longitude if location else 0.0,
        link=record.link,
        salary=NO_SALARY,
        tags=tuple(record.categories),
        logo=DEFAULT_LOGO,
    )


def to_display_jobs(records: Iterable[JobRecord], location_name: Optional[str] = None) -> List[DisplayJob]:
    """Expand records into display jobs with ids unique across the batch.

    Each valid location yields ``{id}-{n}`` where n indexes the record's valid
    locations. A record with no valid location yields one placeholder
    ``{id}-no-location``. With ``location_name`` only valid locations whose
    city or address contain it are expanded and no placeholders are emitted.
    Colliding ids get ``-{counter}`` appended.
    """
    used: Set[str] = set()
    results: List[DisplayJob] = []
    for record in records:
        valid = record.valid_locations
        if not valid:
            if location_name is None:
                results.append(_project(record, _claim_id(f"{record.id}-no-location", used), None))
            continue
        for index, location in enumerate(valid):
            if location_name is not None and not location.matches(location_name):
                continue
            results.append(_project(record, _claim_id(f"{record.id}-{index}", used), location))
    return results
