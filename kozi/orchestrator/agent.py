# kozi/orchestrator/agent.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from kozi.cv.artifacts import JsonArtifactStore
from kozi.cv.generation import (
    CVCompletion,
    CVGenerationStateMachine,
    is_cancel_phrase,
    is_continue_phrase,
    is_restart_phrase,
)
from kozi.exceptions import GenerationFormatError, SessionNotFoundError
from kozi.jobs.client import JobsClient
from kozi.jobs.normalize import NormalizedJob, rank_for_profile
from kozi.llm.openai_client import Embedder, TextGenerator
from kozi.orchestrator.applications import JsonApplicationStore
from kozi.orchestrator.context import (
    CVGenerationContext,
    GeneralTopicsContext,
    JobsListContext,
    SessionContext,
    as_partial,
)
from kozi.orchestrator.intents import (
    Intent,
    classify,
    extract_job_number,
    extract_preferences,
    extract_topics,
    is_kozi_related,
)
from kozi.orchestrator.profiles import JsonProfileStatusProvider
from kozi.orchestrator.sessions import ASSISTANT, USER, JsonSessionStore, Session
from kozi.rag.retrieval import RetrievalService
from kozi.rag.store import SimilarityStore
from kozi.settings import SETTINGS

logger = logging.getLogger(__name__)

WELCOME = (
    "Hello and welcome to Kozi! I'm your Kozi assistant. I can help you complete your profile, "
    "find and apply for jobs, and create a professional CV. How can I help you today?"
)
GENERIC_APOLOGY = (
    "I'm sorry, something went wrong while processing your request. Please try again in a moment."
)
REDIRECT_SUPPORT = (
    "I can only help with Kozi-related questions (your profile, documents, jobs and CVs). "
    "For anything else, please contact our Support Team: support@kozi.rw | +250 788 123 456"
)
SESSION_NOT_FOUND = (
    "I couldn't find this chat session. It may have expired; please start a new conversation."
)
SESSION_ENDED = "Session ended. Thank you for using Kozi!"
APPLY_HOWTO = (
    "To apply for a job: 1) ask me to show available jobs (for example 'show cleaning jobs in Kigali'), "
    "2) then tell me which one you want, for example 'apply to job number 2'. "
    "Make sure your profile is complete first; it improves your chances."
)


@dataclass
class HandlerResult:
    message: str
    intent: Optional[Intent]
    context: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> Dict[str, Any]:
        return {"message": self.message, "intent": self.intent.value if self.intent else None, **self.data}


Handler = Callable[[Session, str, str, SessionContext], Awaitable[HandlerResult]]


def describe_search(prefs: Dict[str, str]) -> str:
    bits = [prefs[k] for k in ("work_type", "category") if prefs.get(k)]
    where = f" in {prefs['location'].title()}" if prefs.get("location") else ""
    return (" ".join(bits) + " jobs" if bits else "jobs") + where


def render_job(n: int, job: NormalizedJob) -> str:
    lines = [f"{n}. {job.title} ({job.category})", f"   Location: {job.location} | {job.work_type}"]
    if job.salary_min is not None or job.salary_max is not None:
        lo = f"{job.salary_min:,}" if job.salary_min is not None else "?"
        hi = f"{job.salary_max:,}" if job.salary_max is not None else "?"
        lines.append(f"   Salary: {lo} - {hi} {job.salary_currency}")
    if job.application_deadline:
        lines.append(f"   Apply before: {job.application_deadline}")
    return "\n".join(lines)


class Orchestrator:
    """Per-message entry point: transcript, CV flow resume, intent dispatch, context."""

    def __init__(
        self,
        sessions: JsonSessionStore,
        retrieval: RetrievalService,
        jobs: JobsClient,
        cv: CVGenerationStateMachine,
        profiles: JsonProfileStatusProvider,
        applications: JsonApplicationStore,
        *,
        history_turns: Optional[int] = None,
        max_jobs_shown: Optional[int] = None,
        min_profile_completion: Optional[float] = None,
    ) -> None:
        self.sessions = sessions
        self.retrieval = retrieval
        self.jobs = jobs
        self.cv = cv
        self.profiles = profiles
        self.applications = applications
        self.history_turns = history_turns or SETTINGS.history_turns
        self.max_jobs_shown = max_jobs_shown or SETTINGS.max_jobs_shown
        self.min_profile_completion = (
            SETTINGS.min_profile_completion if min_profile_completion is None else min_profile_completion
        )

        self._handlers: Dict[Intent, Handler] = {
            Intent.CV_GENERATION: self._handle_cv_start,
            Intent.JOBS: self._handle_jobs,
            Intent.JOB_APPLICATION: self._handle_application,
            Intent.GENERAL: self._handle_general,
        }
        missing = set(Intent) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no handler for intents: {sorted(i.value for i in missing)}")

        # per-session lock plus the number of turns holding or awaiting it
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # ---------- session lifecycle ----------
    def start_session(self, user_id: str) -> Dict[str, Any]:
        session_id = self.sessions.create_session(user_id)
        self.sessions.append_turn(session_id, WELCOME, ASSISTANT)
        return {"session_id": session_id, "message": WELCOME}

    def end_session(self, session_id: str) -> Dict[str, Any]:
        self.sessions.deactivate(session_id)
        return {"message": SESSION_ENDED}

    def get_history(self, session_id: str) -> Dict[str, Any]:
        session = self.sessions.get_session(session_id)
        return {
            "session_id": session.session_id,
            "messages": [t.to_dict() for t in session.turns],
            "context": session.context,
            "is_active": session.is_active,
        }

    # ---------- per message ----------
    def _acquire_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        return lock

    def _release_lock(self, session_id: str) -> None:
        left = self._lock_users.pop(session_id, 1) - 1
        if left > 0:
            self._lock_users[session_id] = left
        else:
            self._locks.pop(session_id, None)

    async def handle(self, session_id: str, user_id: str, message: str) -> Dict[str, Any]:
        """Turns of one session run strictly in arrival order; sessions run in parallel."""
        lock = self._acquire_lock(session_id)
        try:
            async with lock:
                return await self._handle_turn(session_id, str(user_id), message)
        finally:
            self._release_lock(session_id)

    async def _handle_turn(self, session_id: str, user_id: str, message: str) -> Dict[str, Any]:
        try:
            self.sessions.append_turn(session_id, message, USER)
        except SessionNotFoundError:
            logger.warning("Message for unknown session %s", session_id)
            return {"message": SESSION_NOT_FOUND, "intent": None, "error": "session_not_found"}

        try:
            session = self.sessions.get_session(session_id)
            ctx = SessionContext.from_dict(session.context)
            if ctx.cv_generation is not None and ctx.cv_generation.in_progress:
                result = await self._continue_cv(session, user_id, message, ctx.cv_generation)
            else:
                intent = classify(message)
                logger.info("Session %s: intent=%s", session_id, intent.value)
                result = await self._handlers[intent](session, user_id, message, ctx)
        except Exception:
            logger.exception("Message handling failed (session=%s, user=%s)", session_id, user_id)
            result = HandlerResult(GENERIC_APOLOGY, intent=None, data={"error": "internal"})

        try:
            self.sessions.append_turn(session_id, result.message, ASSISTANT)
            if result.context:
                self.sessions.update_context(session_id, result.context)
        except Exception:
            logger.exception("Failed to persist reply for session %s", session_id)
        return result.to_response()

    # ---------- CV flow ----------
    async def _continue_cv(
        self, session: Session, user_id: str, message: str, state: CVGenerationContext
    ) -> HandlerResult:
        sid = session.session_id
        if is_cancel_phrase(message):
            self.cv.cancel(sid)
            return HandlerResult(
                "OK, I've stopped creating your CV. The details you gave so far are kept. "
                "Say 'create my CV' whenever you want to start again.",
                Intent.CV_GENERATION,
                data={"cancelled": True},
            )
        if is_restart_phrase(message):
            start = self.cv.restart(user_id, sid)
            return HandlerResult(start.message, Intent.CV_GENERATION, data={"current_step": start.current_step})
        prompt = self.cv.current_prompt(sid)
        if is_continue_phrase(message) and prompt:
            return HandlerResult(
                prompt,
                Intent.CV_GENERATION,
                data={"current_step": state.current_step},
            )

        try:
            outcome = await self.cv.process_step(sid, message, state.current_step)
        except GenerationFormatError as e:
            logger.info("CV step %s not understood for session %s: %s", e.step, sid, e.message)
            return HandlerResult(
                f"Sorry, I couldn't understand that. Could you please rephrase your answer?\n\n{prompt or ''}",
                Intent.CV_GENERATION,
                data={"current_step": state.current_step, "error": "rephrase"},
            )

        if isinstance(outcome, CVCompletion):
            return HandlerResult(
                outcome.message,
                Intent.CV_GENERATION,
                data={"completed": True, "artifact_id": outcome.artifact_id, "summary": outcome.summary},
            )
        return HandlerResult(
            outcome.message,
            Intent.CV_GENERATION,
            data={"current_step": outcome.next_step, "progress": outcome.progress_percent},
        )

    async def _handle_cv_start(
        self, session: Session, user_id: str, message: str, ctx: SessionContext
    ) -> HandlerResult:
        start = self.cv.start(user_id, session.session_id)
        return HandlerResult(
            start.message,
            Intent.CV_GENERATION,
            data={"current_step": start.current_step, "has_progress": start.has_progress},
        )

    # ---------- jobs ----------
    async def _handle_jobs(
        self, session: Session, user_id: str, message: str, ctx: SessionContext
    ) -> HandlerResult:
        prefs = extract_preferences(message)
        jobs = await self.jobs.fetch_jobs(prefs)
        what = describe_search(prefs)
        if not jobs:
            return HandlerResult(
                f"I couldn't find any {what} right now. Please try again a bit later, "
                "or try a broader search (for example 'show available jobs').",
                Intent.JOBS,
                data={"jobs": [], "preferences": prefs},
            )

        profile: Dict[str, Any] = {}
        if not prefs.get("category") and not prefs.get("location"):
            profile = self.profiles.get_profile_status(user_id).profile_data
            jobs = rank_for_profile(jobs, profile)

        shown = jobs[: self.max_jobs_shown]
        body = "\n\n".join(render_job(i, j) for i, j in enumerate(shown, 1))
        more = f"\n\n(showing {len(shown)} of {len(jobs)})" if len(jobs) > len(shown) else ""
        listing = JobsListContext(jobs=shown, preferences=prefs)
        return HandlerResult(
            f"Here are the {what} I found:\n\n{body}{more}\n\n"
            "To apply, tell me the job number, for example 'apply to job number 1'.",
            Intent.JOBS,
            context=as_partial(listing),
            data={
                "jobs": [j.to_dict() for j in shown],
                "preferences": prefs,
                "recommended": bool(profile),
            },
        )

    async def _handle_application(
        self, session: Session, user_id: str, message: str, ctx: SessionContext
    ) -> HandlerResult:
        number = extract_job_number(message)
        if number is None:
            return HandlerResult(APPLY_HOWTO, Intent.JOB_APPLICATION)

        listing = ctx.last_jobs
        if listing is None or not listing.jobs:
            return HandlerResult(
                "I don't have a job list for this conversation yet. Ask me to show available jobs "
                "first, then tell me the number of the one you want.",
                Intent.JOB_APPLICATION,
                data={"error": "no_job_list"},
            )
        job = listing.job_at(number)
        if job is None:
            return HandlerResult(
                f"Job number {number} is not in the list I showed you. "
                f"Please choose a number between 1 and {len(listing.jobs)}.",
                Intent.JOB_APPLICATION,
                data={"error": "index_out_of_range"},
            )

        status = self.profiles.get_profile_status(user_id)
        if status.completion_percentage < self.min_profile_completion:
            missing = ", ".join(status.missing_fields) or "your remaining details"
            return HandlerResult(
                f"Your profile is {status.completion_percentage:.0f}% complete. You need at least "
                f"{self.min_profile_completion:.0f}% to apply. Please complete: {missing}.",
                Intent.JOB_APPLICATION,
                data={"error": "profile_incomplete", "completion": status.completion_percentage},
            )

        application_id = self.applications.record(job.id, user_id, job_title=job.title)
        if application_id is None:
            return HandlerResult(
                f"You have already applied to '{job.title}'. You can check its status in your profile.",
                Intent.JOB_APPLICATION,
                data={"error": "duplicate_application", "job_id": job.id},
            )
        return HandlerResult(
            f"Your application for '{job.title}' has been submitted successfully! "
            "The employer will review it and Kozi will keep you updated.",
            Intent.JOB_APPLICATION,
            data={"application_id": application_id, "job_id": job.id},
        )

    # ---------- general Q&A ----------
    async def _handle_general(
        self, session: Session, user_id: str, message: str, ctx: SessionContext
    ) -> HandlerResult:
        if not is_kozi_related(message):
            return HandlerResult(REDIRECT_SUPPORT, Intent.GENERAL)

        profile = self.profiles.get_profile_status(user_id)
        response = await self.retrieval.generate_contextual_response(
            message, session.recent_turns(self.history_turns), profile
        )

        topics: List[str] = list(ctx.general.topics_discussed) if ctx.general else []
        topics += [t for t in extract_topics(message) if t not in topics]
        general = GeneralTopicsContext(
            topics_discussed=topics, last_profile_completion=profile.completion_percentage
        )
        return HandlerResult(response, Intent.GENERAL, context=as_partial(general))


def build_orchestrator() -> Orchestrator:
    """Wire the default file-backed collaborators and OpenAI-backed generation."""
    sessions = JsonSessionStore()
    generator = TextGenerator()
    retrieval = RetrievalService(SimilarityStore(), Embedder(), generator)
    cv = CVGenerationStateMachine(sessions, generator, JsonArtifactStore())
    return Orchestrator(
        sessions=sessions,
        retrieval=retrieval,
        jobs=JobsClient(),
        cv=cv,
        profiles=JsonProfileStatusProvider(),
        applications=JsonApplicationStore(),
    )
