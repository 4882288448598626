"""Normalization of upstream job records.

The jobs API is not consistent about field names, so every output field is
resolved from a fixed list of aliases (first present wins). Records without
any id alias are dropped. Filtering and ordering live here too so the client
stays a thin transport layer.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional

from kozi.utils.dates import iso_date_or_none

DEFAULT_CURRENCY = "RWF"
ACTIVE_STATUSES = frozenset({"active", "open", "published"})

# output field -> upstream aliases, in priority order
FIELD_ALIASES: Dict[str, tuple[str, ...]] = {
    "id": ("id", "job_id", "ID", "jobId", "_id"),
    "title": ("title", "job_title", "position", "name"),
    "category": ("category", "job_category", "category_name", "function"),
    "description": ("description", "job_description", "details"),
    "requirements": ("requirements", "requirement", "qualifications"),
    "salary_min": ("salary_min", "min_salary", "salary_from"),
    "salary_max": ("salary_max", "max_salary", "salary_to"),
    "salary_currency": ("salary_currency", "currency"),
    "location": ("location", "city", "district", "area"),
    "work_type": ("work_type", "employment_type", "job_type"),
    "experience_level": ("experience_level", "level", "experience"),
    "education_level": ("education_level", "education"),
    "status": ("status", "job_status"),
    "positions_available": ("positions_available", "slots", "vacancies", "positions"),
    "positions_filled": ("positions_filled", "filled"),
    "posted_date": ("posted_date", "created_at", "date_posted", "published_at"),
    "application_deadline": ("application_deadline", "deadline", "closing_date"),
    "start_date": ("start_date",),
    "views": ("views", "view_count"),
    "applications_count": ("applications_count", "applicants", "application_count"),
}


@dataclass
class NormalizedJob:
    id: Any
    title: str = "Untitled"
    category: str = "General"
    description: str = ""
    requirements: str = ""
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_currency: str = DEFAULT_CURRENCY
    location: str = "Kigali"
    work_type: str = "full-time"
    experience_level: str = "entry"
    education_level: Optional[str] = None
    status: str = "active"
    positions_available: Optional[int] = None
    positions_filled: int = 0
    posted_date: Optional[str] = None
    application_deadline: Optional[str] = None
    start_date: Optional[str] = None
    views: int = 0
    applications_count: int = 0

    @property
    def has_open_positions(self) -> bool:
        if self.positions_available is None:
            return True
        return self.positions_available > (self.positions_filled or 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "NormalizedJob":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})


def _first(raw: Mapping[str, Any], name: str) -> Any:
    for alias in FIELD_ALIASES[name]:
        v = raw.get(alias)
        if v is not None and v != "":
            return v
    return None


def num_or_none(v: Any) -> Optional[float]:
    """Non-negative finite number, or None. Accepts numeric strings ("1,000")."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.replace(",", "").strip()
        if not v:
            return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n) or n < 0:
        return None
    return int(n) if n.is_integer() else n


def int_or_none(v: Any) -> Optional[int]:
    n = num_or_none(v)
    return None if n is None else int(n)


def _text(v: Any, default: str) -> str:
    if v is None:
        return default
    if isinstance(v, (list, tuple)):
        return "\n".join(str(x) for x in v if x)
    if isinstance(v, Mapping):
        return str(v.get("name") or v.get("title") or default)
    s = str(v).strip()
    return s or default


def normalize_job(raw: Any) -> Optional[NormalizedJob]:
    """Map one upstream record to a NormalizedJob; None when it has no id."""
    if not isinstance(raw, Mapping):
        return None
    job_id = _first(raw, "id")
    if job_id is None:
        return None

    status = _text(_first(raw, "status"), "active").lower()
    return NormalizedJob(
        id=job_id,
        title=_text(_first(raw, "title"), "Untitled"),
        category=_text(_first(raw, "category"), "General"),
        description=_text(_first(raw, "description"), ""),
        requirements=_text(_first(raw, "requirements"), ""),
        salary_min=num_or_none(_first(raw, "salary_min")),
        salary_max=num_or_none(_first(raw, "salary_max")),
        salary_currency=_text(_first(raw, "salary_currency"), DEFAULT_CURRENCY),
        location=_text(_first(raw, "location"), "Kigali"),
        work_type=_text(_first(raw, "work_type"), "full-time").lower(),
        experience_level=_text(_first(raw, "experience_level"), "entry"),
        education_level=_first(raw, "education_level"),
        status=status,
        positions_available=int_or_none(_first(raw, "positions_available")),
        positions_filled=int_or_none(_first(raw, "positions_filled")) or 0,
        posted_date=iso_date_or_none(_first(raw, "posted_date")),
        application_deadline=iso_date_or_none(_first(raw, "application_deadline")),
        start_date=iso_date_or_none(_first(raw, "start_date")),
        views=int_or_none(_first(raw, "views")) or 0,
        applications_count=int_or_none(_first(raw, "applications_count")) or 0,
    )


def extract_records(payload: Any) -> List[Any]:
    """Accept a bare list or {"data": [...]}; anything else yields []."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), list):
        return payload["data"]
    return []


def apply_filters(
    jobs: Iterable[NormalizedJob],
    filters: Optional[Mapping[str, Any]] = None,
    *,
    today: Optional[date] = None,
) -> List[NormalizedJob]:
    """Preference filters + the visibility rules (status, open slots, deadline)."""
    filters = filters or {}
    category = str(filters.get("category") or "").strip().lower()
    location = str(filters.get("location") or "").strip().lower()
    work_type = str(filters.get("work_type") or "").strip().lower()
    today_iso = (today or date.today()).isoformat()

    out: List[NormalizedJob] = []
    for j in jobs:
        if j.status not in ACTIVE_STATUSES:
            continue
        if not j.has_open_positions:
            continue
        if j.application_deadline and j.application_deadline < today_iso:
            continue
        if category and category not in (j.category or "").lower():
            continue
        if location and location not in (j.location or "").lower():
            continue
        if work_type and work_type != (j.work_type or "").lower():
            continue
        out.append(j)
    return out


def sort_newest_first(jobs: Iterable[NormalizedJob]) -> List[NormalizedJob]:
    """posted_date descending; undated postings keep their order at the end."""
    jobs = list(jobs)
    dated = sorted((j for j in jobs if j.posted_date), key=lambda j: j.posted_date, reverse=True)
    undated = [j for j in jobs if not j.posted_date]
    return dated + undated


def normalize_jobs(
    payload: Any,
    filters: Optional[Mapping[str, Any]] = None,
    *,
    today: Optional[date] = None,
) -> List[NormalizedJob]:
    jobs = [j for j in (normalize_job(r) for r in extract_records(payload)) if j is not None]
    return sort_newest_first(apply_filters(jobs, filters, today=today))


def _same(a: Any, b: Any) -> bool:
    a, b = str(a or "").strip().lower(), str(b or "").strip().lower()
    return bool(a) and a == b


def profile_match_score(job: NormalizedJob, profile: Mapping[str, Any]) -> int:
    """3 for the profile's category, else 2 for its experience level, else 1 for its location."""
    if _same(job.category, profile.get("job_category")):
        return 3
    if _same(job.experience_level, profile.get("experience_level")):
        return 2
    where = str(profile.get("location") or "").strip().lower()
    if where and where in (job.location or "").lower():
        return 1
    return 0


def rank_for_profile(
    jobs: Iterable[NormalizedJob], profile: Optional[Mapping[str, Any]]
) -> List[NormalizedJob]:
    """Best profile match first; newest first among equal scores."""
    newest = sort_newest_first(jobs)
    if not profile:
        return newest
    return sorted(newest, key=lambda j: profile_match_score(j, profile), reverse=True)
