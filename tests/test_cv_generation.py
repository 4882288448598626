import json

import pytest

from kozi.cv.generation import (
    STEPS,
    CVCompletion,
    CVGenerationStateMachine,
    StepOutcome,
    extract_json_object,
    format_cv_data,
    is_cancel_phrase,
    is_restart_phrase,
    validate_step_payload,
)
from kozi.exceptions import CVStateNotFoundError, GenerationFormatError, InvalidStepError

from conftest import CONTACT_JSON, FakeGenerator

STEP_REPLIES = {
    "contact_info": CONTACT_JSON,
    "professional_summary": json.dumps({"summary": "Reliable housekeeper with 3 years of experience."}),
    "work_experience": json.dumps({"experiences": [
        {"title": "Housekeeper", "company": "Hotel Mille Collines", "dates": "2021 - 2024"}
    ]}),
    "education": json.dumps({"education": [{"level": "A2 Hospitality", "institution": "IPRC Kigali", "year": "2020"}]}),
    "skills": json.dumps({"skills": ["cleaning", "laundry", "ironing"]}),
    "certifications": json.dumps({"certifications": []}),
    "languages": json.dumps({"languages": [{"language": "Kinyarwanda", "proficiency": "Native"}]}),
}


def _machine(sessions, artifacts, replies):
    return CVGenerationStateMachine(sessions, FakeGenerator(replies), artifacts)


def test_extract_json_object_ignores_prose_and_braces_in_strings():
    text = 'Sure! Here it is:\n```json\n{"summary": "likes {curly} braces", "n": {"a": 1}}\n```\nanything else?'
    assert extract_json_object(text) == {"summary": "likes {curly} braces", "n": {"a": 1}}

    for bad in ("no json here", '{"unterminated": 1', "[1, 2]", '{"a": }'):
        with pytest.raises(ValueError):
            extract_json_object(bad)


def test_validate_step_payload_checks_keys_and_types():
    validate_step_payload("skills", {"skills": ["a"]})
    with pytest.raises(GenerationFormatError):
        validate_step_payload("skills", {"skill": ["a"]})
    with pytest.raises(GenerationFormatError):
        validate_step_payload("skills", {"skills": "a, b"})


STEP_ANSWERS_WITH_COMMAND_WORDS = [
    "Housekeeper at Hotel Mille Collines until 2023, then I quit to care for my mother",
    "Non-stop cleaning at the Remera bus stop",
    "Mother of two who wants to restart her career in housekeeping",
]


def test_cancel_phrases():
    for text in ("cancel", "stop", "Quit.", "please STOP", "cancel the cv"):
        assert is_cancel_phrase(text), text
    assert not is_cancel_phrase("I worked at a bus stopover")
    assert not is_cancel_phrase("")


def test_restart_phrases():
    for text in ("restart", "start over", "Start again!", "start fresh please"):
        assert is_restart_phrase(text), text
    assert not is_restart_phrase("start")


@pytest.mark.parametrize("answer", STEP_ANSWERS_WITH_COMMAND_WORDS)
def test_step_answers_are_not_commands(answer):
    assert not is_cancel_phrase(answer)
    assert not is_restart_phrase(answer)


@pytest.mark.asyncio
async def test_steps_advance_in_order_and_finalize(sessions, artifacts):
    sid = sessions.create_session("u1")
    machine = _machine(sessions, artifacts, [STEP_REPLIES[s] for s in STEPS])

    start = machine.start("u1", sid)
    assert start.current_step == "contact_info"
    assert not start.has_progress

    for i, step in enumerate(STEPS[:-1]):
        outcome = await machine.process_step(sid, f"answer for {step}")
        assert isinstance(outcome, StepOutcome)
        assert outcome.next_step == STEPS[i + 1]
        assert outcome.progress_percent == round((i + 1) / 7 * 100)
        assert machine.get_state(sid).completed_steps == list(STEPS[: i + 1])

    done = await machine.process_step(sid, "Kinyarwanda native")
    assert isinstance(done, CVCompletion)
    assert "CV for Aline Uwase" in done.summary

    state = machine.get_state(sid)
    assert state.completed and not state.cancelled
    assert state.current_step is None
    assert state.completed_steps == list(STEPS)
    assert state.artifact_id == done.artifact_id

    record = artifacts.get(done.artifact_id)
    assert record["user_id"] == "u1"
    assert record["template_name"] == "professional"
    assert record["cv_data"]["contact"]["full_name"] == "Aline Uwase"
    assert record["cv_data"]["skills"] == ["cleaning", "laundry", "ironing"]


@pytest.mark.asyncio
async def test_malformed_output_does_not_advance(sessions, artifacts):
    sid = sessions.create_session("u1")
    machine = _machine(sessions, artifacts, ["I could not parse that, sorry", '{"phone": 5}'])
    machine.start("u1", sid)

    with pytest.raises(GenerationFormatError):
        await machine.process_step(sid, "gibberish")
    with pytest.raises(GenerationFormatError):
        await machine.process_step(sid, "gibberish again")

    state = machine.get_state(sid)
    assert state.current_step == "contact_info"
    assert state.completed_steps == []
    assert state.cv_data == {}


@pytest.mark.asyncio
async def test_cancel_keeps_collected_data(sessions, artifacts):
    sid = sessions.create_session("u1")
    machine = _machine(sessions, artifacts, [STEP_REPLIES["contact_info"], STEP_REPLIES["professional_summary"]])
    machine.start("u1", sid)
    await machine.process_step(sid, "contact")
    await machine.process_step(sid, "summary")
    before = dict(machine.get_state(sid).cv_data)

    machine.cancel(sid)

    state = machine.get_state(sid)
    assert state.completed and state.cancelled
    assert state.current_step is None
    assert state.cv_data == before
    assert not state.in_progress


@pytest.mark.asyncio
async def test_start_with_progress_offers_resume_and_restart_resets(sessions, artifacts):
    sid = sessions.create_session("u1")
    machine = _machine(sessions, artifacts, [STEP_REPLIES["contact_info"]])
    machine.start("u1", sid)
    await machine.process_step(sid, "contact")

    again = machine.start("u1", sid)
    assert again.has_progress
    assert again.current_step == "professional_summary"

    fresh = machine.restart("u1", sid)
    assert fresh.current_step == "contact_info"
    assert machine.get_state(sid).completed_steps == []


@pytest.mark.asyncio
async def test_step_guards(sessions, artifacts):
    sid = sessions.create_session("u1")
    machine = _machine(sessions, artifacts, [])
    with pytest.raises(CVStateNotFoundError):
        await machine.process_step(sid, "hello")

    machine.start("u1", sid)
    with pytest.raises(InvalidStepError):
        await machine.process_step(sid, "hello", current_step="skills")

    machine.cancel(sid)
    with pytest.raises(InvalidStepError):
        await machine.process_step(sid, "hello")


@pytest.mark.asyncio
async def test_artifact_failure_leaves_state_uncommitted(sessions):
    class BrokenArtifacts:
        def save_generated_document(self, user_id, structured_data, template_name):
            raise OSError("disk full")

    sid = sessions.create_session("u1")
    machine = CVGenerationStateMachine(sessions, FakeGenerator([STEP_REPLIES[s] for s in STEPS]), BrokenArtifacts())
    machine.start("u1", sid)
    for step in STEPS[:-1]:
        await machine.process_step(sid, step)

    with pytest.raises(OSError):
        await machine.process_step(sid, "languages")

    state = machine.get_state(sid)
    assert state.current_step == "languages"
    assert not state.completed


def test_format_cv_data_defaults():
    cv = format_cv_data({"contact_info": {"full_name": "A"}})
    assert cv == {
        "contact": {"full_name": "A"},
        "summary": "",
        "experience": [],
        "education": [],
        "skills": [],
        "certifications": [],
        "languages": [],
    }
