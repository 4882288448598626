import asyncio
import json

import pytest

from kozi.jobs.normalize import NormalizedJob
from kozi.orchestrator.agent import GENERIC_APOLOGY, REDIRECT_SUPPORT, WELCOME
from kozi.orchestrator.context import SessionContext
from kozi.orchestrator.sessions import ASSISTANT, USER

from conftest import COMPLETE_PROFILE, CONTACT_JSON, FakeJobs

JOBS = [
    NormalizedJob(id=11, title="House Cleaner", category="cleaning", location="Kigali"),
    NormalizedJob(id=12, title="Office Cleaner", category="cleaning", location="Kigali", work_type="part-time"),
]


def _ctx(sessions, sid):
    return SessionContext.from_dict(sessions.get_session(sid).context)


def test_start_session_greets_and_records_welcome(make_orchestrator, sessions):
    orch, _ = make_orchestrator()
    started = orch.start_session("u1")
    assert started["message"] == WELCOME
    history = orch.get_history(started["session_id"])
    assert [m["sender"] for m in history["messages"]] == [ASSISTANT]

    assert "Session ended" in orch.end_session(started["session_id"])["message"]
    assert not sessions.get_session(started["session_id"]).is_active


@pytest.mark.asyncio
async def test_create_cv_then_contact_details_advances_one_step(make_orchestrator, sessions):
    orch, generator = make_orchestrator(replies=[CONTACT_JSON])
    sid = sessions.create_session("u1")

    first = await orch.handle(sid, "u1", "create my cv")
    assert first["intent"] == "cv_generation"
    assert first["current_step"] == "contact_info"
    assert _ctx(sessions, sid).cv_generation.current_step == "contact_info"

    second = await orch.handle(sid, "u1", "Aline Uwase, +250788000111, aline@example.com, Kigali")
    assert second["intent"] == "cv_generation"
    assert second["current_step"] == "professional_summary"
    assert second["progress"] == 14

    state = _ctx(sessions, sid).cv_generation
    assert state.completed_steps == ["contact_info"]
    assert state.cv_data["contact_info"]["full_name"] == "Aline Uwase"
    # the reply went to the parser, not to intent classification
    assert "Aline Uwase" in generator.calls[0]["turns"][0].text

    turns = sessions.get_session(sid).turns
    assert [t.sender for t in turns] == [USER, ASSISTANT, USER, ASSISTANT]


@pytest.mark.asyncio
async def test_unparseable_step_asks_to_rephrase(make_orchestrator, sessions):
    orch, _ = make_orchestrator(replies=["not json at all"])
    sid = sessions.create_session("u1")
    await orch.handle(sid, "u1", "help me with my resume")

    reply = await orch.handle(sid, "u1", "blah")
    assert "rephrase" in reply["message"]
    assert reply["current_step"] == "contact_info"
    assert _ctx(sessions, sid).cv_generation.completed_steps == []


@pytest.mark.asyncio
async def test_cancel_mid_flow_then_normal_routing(make_orchestrator, sessions):
    orch, _ = make_orchestrator(replies=[CONTACT_JSON])
    sid = sessions.create_session("u1")
    await orch.handle(sid, "u1", "create my cv")
    await orch.handle(sid, "u1", "my contact details")

    reply = await orch.handle(sid, "u1", "stop")
    assert reply.get("cancelled")
    state = _ctx(sessions, sid).cv_generation
    assert state.completed and state.cancelled
    assert "contact_info" in state.cv_data

    follow = await orch.handle(sid, "u1", "What is Kozi?")
    assert follow["intent"] == "general"


@pytest.mark.asyncio
async def test_step_answers_mentioning_quit_stop_or_restart_advance(make_orchestrator, sessions):
    replies = [
        CONTACT_JSON,
        json.dumps({"summary": "Mother of two returning to housekeeping."}),
        json.dumps({"experiences": [{"title": "Housekeeper", "company": "Hotel Mille Collines"}]}),
        json.dumps({"education": [{"level": "Cleaning course", "institution": "Remera"}]}),
    ]
    orch, _ = make_orchestrator(replies=replies)
    sid = sessions.create_session("u1")
    await orch.handle(sid, "u1", "create my cv")
    await orch.handle(sid, "u1", "Aline Uwase, +250788000111, Kigali")

    answers = [
        "Mother of two who wants to restart her career in housekeeping",
        "Housekeeper at Hotel Mille Collines until 2023, then I quit to care for my mother",
        "Non-stop cleaning at the Remera bus stop",
    ]
    for answer in answers:
        reply = await orch.handle(sid, "u1", answer)
        assert reply["intent"] == "cv_generation"
        assert not reply.get("cancelled")

    state = _ctx(sessions, sid).cv_generation
    assert not state.cancelled and not state.completed
    assert state.current_step == "skills"
    assert state.completed_steps == ["contact_info", "professional_summary", "work_experience", "education"]
    assert state.cv_data["contact_info"]["full_name"] == "Aline Uwase"


@pytest.mark.asyncio
async def test_continue_reshows_current_question(make_orchestrator, sessions):
    orch, generator = make_orchestrator()
    sid = sessions.create_session("u1")
    await orch.handle(sid, "u1", "create my cv")
    reply = await orch.handle(sid, "u1", "continue")
    assert reply["current_step"] == "contact_info"
    assert generator.calls == []


@pytest.mark.asyncio
async def test_jobs_listing_is_remembered(make_orchestrator, sessions):
    jobs = FakeJobs(JOBS)
    orch, _ = make_orchestrator(jobs=jobs)
    sid = sessions.create_session("u1")

    reply = await orch.handle(sid, "u1", "Show me available cleaning jobs in Kigali")

    assert reply["intent"] == "jobs"
    assert jobs.filters == [{"category": "cleaning", "location": "kigali"}]
    assert "1. House Cleaner" in reply["message"]
    assert "2. Office Cleaner" in reply["message"]
    assert "apply to job number" in reply["message"]
    assert [j.id for j in _ctx(sessions, sid).last_jobs.jobs] == [11, 12]


@pytest.mark.asyncio
async def test_jobs_listing_is_capped(make_orchestrator, sessions):
    many = [NormalizedJob(id=i, title=f"Job {i}") for i in range(1, 9)]
    orch, _ = make_orchestrator(jobs=FakeJobs(many), max_jobs_shown=3)
    sid = sessions.create_session("u1")
    reply = await orch.handle(sid, "u1", "show available jobs")
    assert len(reply["jobs"]) == 3
    assert len(_ctx(sessions, sid).last_jobs.jobs) == 3


@pytest.mark.asyncio
async def test_no_jobs_says_try_again(make_orchestrator, sessions):
    orch, _ = make_orchestrator(jobs=FakeJobs([]))
    sid = sessions.create_session("u1")
    reply = await orch.handle(sid, "u1", "find security jobs")
    assert "try again" in reply["message"]
    assert _ctx(sessions, sid).last_jobs is None


@pytest.mark.asyncio
async def test_application_flow(make_orchestrator, sessions, profiles, applications):
    orch, _ = make_orchestrator(jobs=FakeJobs(JOBS))
    sid = sessions.create_session("u1")

    howto = await orch.handle(sid, "u1", "How do I apply for a job")
    assert "apply to job number" in howto["message"]

    no_list = await orch.handle(sid, "u1", "apply to job number 1")
    assert no_list["error"] == "no_job_list"

    await orch.handle(sid, "u1", "show cleaning jobs")

    out_of_range = await orch.handle(sid, "u1", "apply to job number 5")
    assert out_of_range["error"] == "index_out_of_range"
    assert "between 1 and 2" in out_of_range["message"]

    incomplete = await orch.handle(sid, "u1", "apply to job number 2")
    assert incomplete["error"] == "profile_incomplete"
    assert "CV upload" in incomplete["message"]
    assert applications.list_for_user("u1") == []

    profiles.save_profile("u1", COMPLETE_PROFILE)
    ok = await orch.handle(sid, "u1", "apply to job number 2")
    assert ok["job_id"] == 12
    assert "submitted" in ok["message"]

    again = await orch.handle(sid, "u1", "apply to job number 2")
    assert again["error"] == "duplicate_application"
    assert len(applications.list_for_user("u1")) == 1


@pytest.mark.asyncio
async def test_unrelated_question_redirects_without_generation(make_orchestrator, sessions):
    orch, generator = make_orchestrator()
    sid = sessions.create_session("u1")
    reply = await orch.handle(sid, "u1", "Who won the football match yesterday?")
    assert reply["message"] == REDIRECT_SUPPORT
    assert generator.calls == []


@pytest.mark.asyncio
async def test_general_question_uses_history_and_tracks_topics(make_orchestrator, sessions):
    orch, generator = make_orchestrator(replies=["Kozi connects workers and employers."])
    sid = sessions.create_session("u1")

    reply = await orch.handle(sid, "u1", "What is Kozi and how do I update my profile?")

    assert reply["intent"] == "general"
    assert reply["message"] == "Kozi connects workers and employers."
    sent = generator.calls[0]
    assert [t.text for t in sent["turns"]] == ["What is Kozi and how do I update my profile?"]
    assert "USER STATUS" in sent["system_prompt"]
    general = _ctx(sessions, sid).general
    assert general.topics_discussed == ["profile"]
    assert general.last_profile_completion == 0.0


@pytest.mark.asyncio
async def test_handler_failure_becomes_apology(make_orchestrator, sessions):
    class BrokenJobs:
        async def fetch_jobs(self, filters=None):
            raise RuntimeError("boom")

    orch, _ = make_orchestrator(jobs=BrokenJobs())
    sid = sessions.create_session("u1")
    reply = await orch.handle(sid, "u1", "show available jobs")
    assert reply["message"] == GENERIC_APOLOGY
    assert sessions.get_session(sid).turns[-1].text == GENERIC_APOLOGY


@pytest.mark.asyncio
async def test_unknown_session_is_reported_precisely(make_orchestrator, sessions):
    orch, _ = make_orchestrator()
    reply = await orch.handle("nope", "u1", "hello")
    assert reply["error"] == "session_not_found"
    assert sessions.list_sessions() == []


@pytest.mark.asyncio
async def test_turns_of_one_session_are_serialized(make_orchestrator, sessions):
    class SlowJobs:
        async def fetch_jobs(self, filters=None):
            await asyncio.sleep(0.05)
            return list(JOBS)

    orch, _ = make_orchestrator(jobs=SlowJobs())
    sid = sessions.create_session("u1")
    await asyncio.gather(
        orch.handle(sid, "u1", "show cleaning jobs"),
        orch.handle(sid, "u1", "show available jobs"),
    )
    senders = [t.sender for t in sessions.get_session(sid).turns]
    assert senders == [USER, ASSISTANT, USER, ASSISTANT]


@pytest.mark.asyncio
async def test_session_locks_are_released_after_each_turn(make_orchestrator, sessions):
    orch, _ = make_orchestrator(jobs=FakeJobs(JOBS))
    sid = sessions.create_session("u1")
    await asyncio.gather(
        orch.handle(sid, "u1", "show cleaning jobs"),
        orch.handle(sid, "u1", "show available jobs"),
    )
    await orch.handle("no-such-session", "u1", "hello")
    assert orch._locks == {}
    assert orch._lock_users == {}


@pytest.mark.asyncio
async def test_plain_jobs_request_is_ranked_against_profile(make_orchestrator, sessions, profiles):
    jobs = [
        NormalizedJob(id=1, title="Gardener", category="gardening", location="Musanze", posted_date="2025-05-20"),
        NormalizedJob(id=2, title="Room Attendant", category="housekeeping", location="Huye", posted_date="2025-04-01"),
        NormalizedJob(id=3, title="Cook", category="cooking", location="Kigali", posted_date="2025-05-01"),
    ]
    profiles.save_profile("u1", COMPLETE_PROFILE)
    orch, _ = make_orchestrator(jobs=FakeJobs(jobs))
    sid = sessions.create_session("u1")

    reply = await orch.handle(sid, "u1", "show available jobs")

    assert reply["recommended"]
    assert [j["id"] for j in reply["jobs"]] == [2, 3, 1]
    assert [j.id for j in _ctx(sessions, sid).last_jobs.jobs] == [2, 3, 1]

    keyword = await orch.handle(sid, "u1", "show cleaning jobs")
    assert not keyword["recommended"]
