# kozi/exceptions.py
"""
Exception types for the Kozi assistant.

Failure categories:
- Text-generation / embedding collaborator failures
- Malformed generation output (CV step parsing)
- Unknown sessions and out-of-order CV steps
- Upstream jobs API failures (internal to the jobs client)
"""
from __future__ import annotations

from typing import Optional


class KoziError(Exception):
    """Base exception for the Kozi assistant."""
    pass


# --- Generation collaborators ---
class GenerationError(KoziError):
    """The text-generation or embedding call failed (timeout, transport, config)."""
    pass


class GenerationFormatError(GenerationError):
    """Generation output did not contain the JSON object the step expects."""
    def __init__(self, step: str, message: str, raw: str = ""):
        super().__init__(f"{step}: {message}")
        self.step = step
        self.message = message
        self.raw = raw


# --- Sessions / CV flow ---
class SessionNotFoundError(KoziError):
    """No chat session with the given id."""
    def __init__(self, session_id: str):
        super().__init__(f"Chat session not found: {session_id}")
        self.session_id = session_id


class CVStateNotFoundError(KoziError):
    """process_step called for a session without CV generation state."""
    def __init__(self, session_id: str):
        super().__init__(f"CV generation session not found: {session_id}")
        self.session_id = session_id


class InvalidStepError(KoziError):
    """A CV step was submitted out of order."""
    def __init__(self, expected: Optional[str], got: str):
        super().__init__(f"expected step {expected!r}, got {got!r}")
        self.expected = expected
        self.got = got


# --- Upstream jobs API ---
class JobsAPIError(KoziError):
    """Non-2xx or unusable response from the jobs API."""
    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"jobs api [{status}]: {message}")
        self.status = status
        self.message = message


class JobsAuthError(JobsAPIError):
    """Login failed or returned no token."""
    pass


__all__ = [
    "KoziError",
    "GenerationError",
    "GenerationFormatError",
    "SessionNotFoundError",
    "CVStateNotFoundError",
    "InvalidStepError",
    "JobsAPIError",
    "JobsAuthError",
]
