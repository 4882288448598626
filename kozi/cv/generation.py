# kozi/cv/generation.py
"""
Step-by-step CV authoring inside a chat session.

contact_info -> professional_summary -> work_experience -> education -> skills
-> certifications -> languages -> (completed)

Each reply is turned into structured data by the text generator, which is told
per step to emit a fixed JSON shape (STEP_SCHEMAS). The first balanced JSON
object in the reply is parsed and checked; anything else raises
GenerationFormatError and the step does not advance. State lives in the
session context under "cv_generation".
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from kozi.exceptions import CVStateNotFoundError, GenerationFormatError, InvalidStepError
from kozi.llm.prompts import CV_RESUME_PROMPT, CV_STEP_PARSERS, CV_STEP_PROMPTS, JSON_ONLY_SUFFIX
from kozi.orchestrator.context import CVGenerationContext, SessionContext, as_partial
from kozi.orchestrator.sessions import USER, Turn

logger = logging.getLogger(__name__)

STEPS: Tuple[str, ...] = (
    "contact_info",
    "professional_summary",
    "work_experience",
    "education",
    "skills",
    "certifications",
    "languages",
)

_STR = (str, type(None))

# step -> (parser instruction, required top-level keys and the types they accept)
STEP_SCHEMAS: Dict[str, Tuple[str, Dict[str, tuple]]] = {
    "contact_info": (
        CV_STEP_PARSERS["contact_info"],
        {"full_name": _STR, "phone": _STR, "email": _STR, "location": _STR},
    ),
    "professional_summary": (CV_STEP_PARSERS["professional_summary"], {"summary": (str,)}),
    "work_experience": (CV_STEP_PARSERS["work_experience"], {"experiences": (list,)}),
    "education": (CV_STEP_PARSERS["education"], {"education": (list,)}),
    "skills": (CV_STEP_PARSERS["skills"], {"skills": (list,)}),
    "certifications": (CV_STEP_PARSERS["certifications"], {"certifications": (list,)}),
    "languages": (CV_STEP_PARSERS["languages"], {"languages": (list,)}),
}

# whole-message commands only; step answers may contain these words
CANCEL_RE = re.compile(
    r"^\W*(please\s+)?(cancel|stop|quit)(\s+(it|this|now|please|the\s+cv|my\s+cv))?\W*$",
    re.IGNORECASE,
)
RESTART_RE = re.compile(
    r"^\W*(please\s+)?(restart|start\s+(over|fresh|again))(\s+(please|the\s+cv|my\s+cv))?\W*$",
    re.IGNORECASE,
)
CONTINUE_RE = re.compile(r"^\W*(continue|resume)\b", re.IGNORECASE)


def is_cancel_phrase(text: str) -> bool:
    return bool(CANCEL_RE.match(text or ""))

def is_restart_phrase(text: str) -> bool:
    return bool(RESTART_RE.match(text or ""))

def is_continue_phrase(text: str) -> bool:
    return bool(CONTINUE_RE.search(text or ""))


@dataclass
class CVStart:
    message: str
    current_step: Optional[str]
    has_progress: bool


@dataclass
class StepOutcome:
    message: str
    next_step: str
    progress_percent: int


@dataclass
class CVCompletion:
    message: str
    summary: str
    artifact_id: str
    completed: bool = True


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the first balanced {...} in text. Braces inside JSON strings are
    ignored. Raises ValueError when there is none or it does not parse.
    """
    start = (text or "").find("{")
    if start < 0:
        raise ValueError("no JSON object in response")
    depth = 0
    in_str = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                obj = json.loads(text[start:i + 1])
                if not isinstance(obj, dict):
                    raise ValueError("JSON payload is not an object")
                return obj
    raise ValueError("unbalanced JSON object in response")


def validate_step_payload(step: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    _, required = STEP_SCHEMAS[step]
    for key, types in required.items():
        if key not in payload:
            raise GenerationFormatError(step, f"missing key {key!r}")
        if not isinstance(payload[key], types):
            raise GenerationFormatError(step, f"key {key!r} has type {type(payload[key]).__name__}")
    return payload


def format_cv_data(cv_data: Dict[str, Any]) -> Dict[str, Any]:
    """Collapse per-step payloads into one CV document."""
    def _get(step: str, key: str, default: Any) -> Any:
        return (cv_data.get(step) or {}).get(key) or default

    return {
        "contact": cv_data.get("contact_info") or {},
        "summary": _get("professional_summary", "summary", ""),
        "experience": _get("work_experience", "experiences", []),
        "education": _get("education", "education", []),
        "skills": _get("skills", "skills", []),
        "certifications": _get("certifications", "certifications", []),
        "languages": _get("languages", "languages", []),
    }


def summarize_cv(cv: Dict[str, Any]) -> str:
    parts = []
    name = (cv.get("contact") or {}).get("full_name")
    if name:
        parts.append(f"CV for {name}")
    if cv.get("experience"):
        parts.append(f"{len(cv['experience'])} work experience entries")
    if cv.get("education"):
        parts.append(f"{len(cv['education'])} education entries")
    if cv.get("skills"):
        parts.append(f"{len(cv['skills'])} skills listed")
    if cv.get("languages"):
        parts.append(f"{len(cv['languages'])} languages")
    return "\n".join(parts)


class CVGenerationStateMachine:
    def __init__(self, sessions: Any, generator: Any, artifacts: Any) -> None:
        self.sessions = sessions
        self.generator = generator
        self.artifacts = artifacts

    # ---------- state ----------
    def get_state(self, session_id: str) -> Optional[CVGenerationContext]:
        session = self.sessions.get_session(session_id)
        return SessionContext.from_dict(session.context).cv_generation

    def _save(self, session_id: str, state: CVGenerationContext) -> None:
        self.sessions.update_context(session_id, as_partial(state))

    # ---------- transitions ----------
    def start(self, user_id: str, session_id: str) -> CVStart:
        existing = self.get_state(session_id)
        if existing is not None and existing.in_progress:
            return CVStart(
                message=CV_RESUME_PROMPT, current_step=existing.current_step, has_progress=True
            )
        return self.restart(user_id, session_id)

    def restart(self, user_id: str, session_id: str) -> CVStart:
        state = CVGenerationContext(user_id=str(user_id), current_step=STEPS[0])
        self._save(session_id, state)
        logger.info("CV generation started for session %s", session_id)
        return CVStart(message=CV_STEP_PROMPTS[STEPS[0]], current_step=STEPS[0], has_progress=False)

    def cancel(self, session_id: str) -> Optional[CVGenerationContext]:
        """Stop the flow; whatever was collected stays in cv_data."""
        state = self.get_state(session_id)
        if state is None or state.completed:
            return state
        state.completed = True
        state.cancelled = True
        state.current_step = None
        self._save(session_id, state)
        logger.info("CV generation cancelled for session %s after %s", session_id, state.completed_steps)
        return state

    def current_prompt(self, session_id: str) -> Optional[str]:
        state = self.get_state(session_id)
        if state is None or not state.in_progress or state.current_step is None:
            return None
        return CV_STEP_PROMPTS[state.current_step]

    async def parse_step_input(self, step: str, user_input: str) -> Dict[str, Any]:
        instruction, _ = STEP_SCHEMAS[step]
        raw = await self.generator.generate(
            [Turn(sender=USER, text=user_input)], instruction + JSON_ONLY_SUFFIX
        )
        try:
            payload = extract_json_object(raw)
        except ValueError as e:
            logger.warning("CV step %s: unparseable generation output (%s)", step, e)
            raise GenerationFormatError(step, str(e), raw) from e
        return validate_step_payload(step, payload)

    async def process_step(
        self, session_id: str, user_input: str, current_step: Optional[str] = None
    ) -> Union[StepOutcome, CVCompletion]:
        state = self.get_state(session_id)
        if state is None:
            raise CVStateNotFoundError(session_id)
        if state.completed or state.current_step is None:
            raise InvalidStepError(None, current_step or "")
        step = state.current_step
        if current_step is not None and current_step != step:
            raise InvalidStepError(step, current_step)

        payload = await self.parse_step_input(step, user_input)

        state.cv_data[step] = payload
        state.completed_steps.append(step)
        idx = STEPS.index(step)

        if idx + 1 < len(STEPS):
            state.current_step = STEPS[idx + 1]
            self._save(session_id, state)
            progress = round((idx + 1) / len(STEPS) * 100)
            logger.info("CV step %s done for session %s (%d%%)", step, session_id, progress)
            return StepOutcome(
                message=f"Got it! Information saved.\n\n{CV_STEP_PROMPTS[state.current_step]}",
                next_step=state.current_step,
                progress_percent=progress,
            )
        return self._finalize(session_id, state)

    def _finalize(self, session_id: str, state: CVGenerationContext) -> CVCompletion:
        cv = format_cv_data(state.cv_data)
        summary = summarize_cv(cv)
        artifact_id = self.artifacts.save_generated_document(state.user_id, cv, "professional")

        state.completed = True
        state.current_step = None
        state.artifact_id = artifact_id
        self._save(session_id, state)
        logger.info("CV generated for user %s: %s", state.user_id, artifact_id)
        return CVCompletion(
            message=(
                "Congratulations! Your CV has been generated successfully!\n\n"
                f"{summary}\n\nYou can now download it or view it in your profile."
            ),
            summary=summary,
            artifact_id=artifact_id,
        )
