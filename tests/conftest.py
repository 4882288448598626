import json
import threading
from typing import Any, Dict, List, Optional

import pytest

from kozi.cv.artifacts import JsonArtifactStore
from kozi.cv.generation import CVGenerationStateMachine
from kozi.orchestrator.agent import Orchestrator
from kozi.orchestrator.applications import JsonApplicationStore
from kozi.orchestrator.profiles import JsonProfileStatusProvider
from kozi.orchestrator.sessions import JsonSessionStore
from kozi.rag.retrieval import RetrievalService
from kozi.rag.store import SimilarityStore


class FakeGenerator:
    """Returns queued replies in order (or `default`), recording every call."""

    def __init__(self, replies: Optional[List[str]] = None, default: str = "ok") -> None:
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, turns, system_prompt):
        self.calls.append({"turns": list(turns), "system_prompt": system_prompt})
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return self.default


class FakeEmbedder:
    """Fixed vectors per text; unknown texts get `default`."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default=(0.0, 0.0, 1.0)):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.calls: List[str] = []

    async def embed(self, text):
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))


class FailingEmbedder:
    async def embed(self, text):
        raise RuntimeError("embedding service down")


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, reason: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason or ("OK" if status_code < 400 else "Error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeHTTP:
    """
    Stands in for requests.Session: POSTs go to the login queue, GETs to the
    jobs queue. A queue's last response repeats once the queue is drained.
    """

    def __init__(self, login=None, jobs=None) -> None:
        self.headers: Dict[str, str] = {}
        self.login_responses = list(login or [FakeResponse(200, {"token": "tok-1"})])
        self.jobs_responses = list(jobs or [FakeResponse(200, [])])
        self.calls: List[Dict[str, Any]] = []
        self._mu = threading.Lock()

    def _next(self, queue):
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def request(self, method, url, timeout=None, **kwargs):
        with self._mu:
            self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
            if method == "POST":
                return self._next(self.login_responses)
            return self._next(self.jobs_responses)

    @property
    def login_calls(self):
        return [c for c in self.calls if c["method"] == "POST"]

    @property
    def job_calls(self):
        return [c for c in self.calls if c["method"] == "GET"]


class FakeJobs:
    def __init__(self, jobs=None) -> None:
        self.jobs = list(jobs or [])
        self.filters: List[Dict[str, Any]] = []

    async def fetch_jobs(self, filters=None):
        self.filters.append(dict(filters or {}))
        return list(self.jobs)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


CONTACT_JSON = json.dumps({
    "full_name": "Aline Uwase",
    "phone": "+250788000111",
    "email": "aline@example.com",
    "location": "Kigali",
})

COMPLETE_PROFILE = {
    "full_name": "Aline Uwase",
    "phone": "+250788000111",
    "location": "Kigali",
    "job_category": "housekeeping",
    "experience_level": "intermediate",
    "skills": ["cleaning", "laundry"],
    "work_experience": "3 years as a housekeeper",
    "education": "Secondary school",
    "cv_uploaded": True,
    "id_uploaded": True,
    "photo_uploaded": True,
}


@pytest.fixture
def sessions(tmp_path):
    return JsonSessionStore(tmp_path / "sessions")


@pytest.fixture
def artifacts(tmp_path):
    return JsonArtifactStore(tmp_path / "artifacts", render_pdf=False)


@pytest.fixture
def profiles(tmp_path):
    return JsonProfileStatusProvider(tmp_path / "profiles.json")


@pytest.fixture
def applications(tmp_path):
    return JsonApplicationStore(tmp_path / "applications.json")


@pytest.fixture
def vector_store(tmp_path):
    store = SimilarityStore(tmp_path / "vectors")
    store.initialize()
    return store


@pytest.fixture
def make_orchestrator(tmp_path, sessions, artifacts, profiles, applications, vector_store):
    """Factory: build an Orchestrator around fakes; returns (orchestrator, generator)."""

    def _make(replies=None, jobs=None, embedder=None, **kwargs):
        generator = FakeGenerator(replies)
        retrieval = RetrievalService(vector_store, embedder or FakeEmbedder(), generator)
        cv = CVGenerationStateMachine(sessions, generator, artifacts)
        orch = Orchestrator(
            sessions=sessions,
            retrieval=retrieval,
            jobs=jobs if jobs is not None else FakeJobs(),
            cv=cv,
            profiles=profiles,
            applications=applications,
            **kwargs,
        )
        return orch, generator

    return _make
