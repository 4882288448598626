from __future__ import annotations
import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from kozi.exceptions import SessionNotFoundError
from kozi.settings import SETTINGS
from kozi.utils.dates import iso_now
from kozi.utils.files import read_json, write_json

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    sender: str
    text: str
    timestamp: str = field(default_factory=iso_now)

    def to_dict(self) -> Dict[str, str]:
        return {"sender": self.sender, "text": self.text, "timestamp": self.timestamp}


@dataclass
class Session:
    session_id: str
    user_id: str
    turns: List[Turn] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: str = field(default_factory=iso_now)

    def recent_turns(self, n: int) -> List[Turn]:
        return self.turns[-n:] if n > 0 else []


class JsonSessionStore:
    """
    One JSON file per session under <data_dir>/sessions.
    Transcript is append-only; context is merged shallowly by top-level key.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or Path(SETTINGS.data_dir) / "sessions")
        self._lock = threading.Lock()

    def _path(self, session_id: str) -> Path:
        # session ids are uuid4 hex; refuse anything that could escape root
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise SessionNotFoundError(session_id)
        return self.root / f"{session_id}.json"

    def _load_raw(self, session_id: str) -> Dict[str, Any]:
        raw = read_json(self._path(session_id), default=None)
        if raw is None:
            raise SessionNotFoundError(session_id)
        return raw

    def create_session(self, user_id: str) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            write_json(self._path(session_id), {
                "session_id": session_id,
                "user_id": str(user_id),
                "messages": [],
                "context": {},
                "is_active": True,
                "created_at": iso_now(),
            })
        logger.info("Chat session created: %s (user=%s)", session_id, user_id)
        return session_id

    def append_turn(self, session_id: str, text: str, sender: str) -> Turn:
        if sender not in (USER, ASSISTANT):
            raise ValueError(f"unknown sender {sender!r}")
        turn = Turn(sender=sender, text=text)
        with self._lock:
            raw = self._load_raw(session_id)
            raw.setdefault("messages", []).append(turn.to_dict())
            write_json(self._path(session_id), raw)
        return turn

    def get_session(self, session_id: str) -> Session:
        raw = self._load_raw(session_id)
        return Session(
            session_id=raw["session_id"],
            user_id=str(raw.get("user_id", "")),
            turns=[Turn(**m) for m in raw.get("messages", [])],
            context=dict(raw.get("context") or {}),
            is_active=bool(raw.get("is_active", True)),
            created_at=raw.get("created_at", ""),
        )

    def update_context(self, session_id: str, partial: Dict[str, Any]) -> None:
        with self._lock:
            raw = self._load_raw(session_id)
            ctx = dict(raw.get("context") or {})
            ctx.update(partial)
            raw["context"] = ctx
            write_json(self._path(session_id), raw)

    def deactivate(self, session_id: str) -> None:
        with self._lock:
            raw = self._load_raw(session_id)
            raw["is_active"] = False
            write_json(self._path(session_id), raw)
        logger.info("Chat session deactivated: %s", session_id)

    def list_sessions(self, user_id: Optional[str] = None) -> List[str]:
        if not self.root.exists():
            return []
        out = []
        for p in sorted(self.root.glob("*.json")):
            raw = read_json(p, default={}) or {}
            if user_id is None or str(raw.get("user_id")) == str(user_id):
                out.append(p.stem)
        return out
