# kozi/orchestrator/context.py
"""
Typed parts of the per-session context.

Each part owns one storage key in the persisted context map, so the writer
(a handler) and the reader (a later turn) agree on its shape:

    cv_generation -> CVGenerationContext
    last_jobs     -> JobsListContext
    general       -> GeneralTopicsContext
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from kozi.jobs.normalize import NormalizedJob
from kozi.utils.dates import iso_now


@dataclass
class CVGenerationContext:
    KEY = "cv_generation"

    user_id: str
    current_step: Optional[str] = "contact_info"
    completed_steps: List[str] = field(default_factory=list)
    cv_data: Dict[str, Any] = field(default_factory=dict)
    completed: bool = False
    cancelled: bool = False
    artifact_id: Optional[str] = None
    started_at: str = field(default_factory=iso_now)

    @property
    def in_progress(self) -> bool:
        return not self.completed

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CVGenerationContext":
        return cls(
            user_id=str(d.get("user_id", "")),
            current_step=d.get("current_step"),
            completed_steps=list(d.get("completed_steps") or []),
            cv_data=dict(d.get("cv_data") or {}),
            completed=bool(d.get("completed", False)),
            cancelled=bool(d.get("cancelled", False)),
            artifact_id=d.get("artifact_id"),
            started_at=d.get("started_at") or iso_now(),
        )


@dataclass
class JobsListContext:
    KEY = "last_jobs"

    jobs: List[NormalizedJob] = field(default_factory=list)
    preferences: Dict[str, str] = field(default_factory=dict)
    shown_at: str = field(default_factory=iso_now)

    def job_at(self, number: int) -> Optional[NormalizedJob]:
        """1-based lookup as shown to the user."""
        if 1 <= number <= len(self.jobs):
            return self.jobs[number - 1]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobs": [j.to_dict() for j in self.jobs],
            "preferences": dict(self.preferences),
            "shown_at": self.shown_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "JobsListContext":
        return cls(
            jobs=[NormalizedJob.from_dict(j) for j in (d.get("jobs") or [])],
            preferences=dict(d.get("preferences") or {}),
            shown_at=d.get("shown_at") or iso_now(),
        )


@dataclass
class GeneralTopicsContext:
    KEY = "general"

    topics_discussed: List[str] = field(default_factory=list)
    last_profile_completion: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GeneralTopicsContext":
        return cls(
            topics_discussed=list(d.get("topics_discussed") or []),
            last_profile_completion=d.get("last_profile_completion"),
        )


@dataclass
class SessionContext:
    cv_generation: Optional[CVGenerationContext] = None
    last_jobs: Optional[JobsListContext] = None
    general: Optional[GeneralTopicsContext] = None

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "SessionContext":
        raw = raw or {}
        ctx = cls()
        if raw.get(CVGenerationContext.KEY):
            ctx.cv_generation = CVGenerationContext.from_dict(raw[CVGenerationContext.KEY])
        if raw.get(JobsListContext.KEY):
            ctx.last_jobs = JobsListContext.from_dict(raw[JobsListContext.KEY])
        if raw.get(GeneralTopicsContext.KEY):
            ctx.general = GeneralTopicsContext.from_dict(raw[GeneralTopicsContext.KEY])
        return ctx


ContextPart = CVGenerationContext | JobsListContext | GeneralTopicsContext


def as_partial(*parts: ContextPart) -> Dict[str, Any]:
    """Build the partial context map the session store merges shallowly."""
    return {p.KEY: p.to_dict() for p in parts}
