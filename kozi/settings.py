from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv
load_dotenv()  # load .env early


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, "").strip() or default)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int((os.getenv(name, "") or str(default)).strip())
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "yes", "on", "y", "t"}


@dataclass
class _Settings:
    # LLM + embeddings
    openai_model: str = field(default_factory=lambda: os.getenv("OPENAI_MODEL", "gpt-4o-mini"))
    embedding_model: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    )
    llm_temperature: float = field(default_factory=lambda: _env_float("LLM_TEMPERATURE", 0.3))
    llm_timeout_s: float = field(default_factory=lambda: _env_float("LLM_TIMEOUT_S", 15.0))

    # Storage
    data_dir: str = field(default_factory=lambda: os.getenv("KOZI_DATA_DIR", "data"))
    vector_store_path: str = field(
        default_factory=lambda: os.getenv("VECTOR_STORE_PATH", "data/vectors")
    )
    docs_dir: str = field(default_factory=lambda: os.getenv("KNOWLEDGE_DOCS_DIR", "data/docs"))
    artifacts_dir: str = field(
        default_factory=lambda: os.getenv("ARTIFACTS_DIR", "outputs/artifacts")
    )

    # Retrieval knobs
    relevance_threshold: float = field(
        default_factory=lambda: _env_float("RELEVANCE_THRESHOLD", 0.7)
    )
    context_limit: int = field(default_factory=lambda: _env_int("CONTEXT_LIMIT", 3))
    history_turns: int = field(default_factory=lambda: _env_int("HISTORY_TURNS", 10))

    # Upstream jobs API
    jobs_api_url: str = field(default_factory=lambda: os.getenv("JOBS_API_URL", ""))
    jobs_login_url: str = field(default_factory=lambda: os.getenv("JOBS_LOGIN_URL", ""))
    jobs_email: str = field(default_factory=lambda: os.getenv("JOBS_API_EMAIL", ""))
    jobs_password: str = field(default_factory=lambda: os.getenv("JOBS_API_PASSWORD", ""))
    jobs_role_id: str = field(default_factory=lambda: os.getenv("JOBS_API_ROLE_ID", "1"))
    jobs_timeout_s: float = field(default_factory=lambda: _env_float("JOBS_TIMEOUT_S", 15.0))
    token_ttl_s: int = field(default_factory=lambda: _env_int("JOBS_TOKEN_TTL_S", 3600))
    token_margin_s: int = field(default_factory=lambda: _env_int("JOBS_TOKEN_MARGIN_S", 300))

    # Conversation knobs
    max_jobs_shown: int = field(default_factory=lambda: _env_int("MAX_JOBS_SHOWN", 5))
    min_profile_completion: float = field(
        default_factory=lambda: _env_float("MIN_PROFILE_COMPLETION", 60.0)
    )

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    log_json: bool = field(default_factory=lambda: _env_bool("LOG_JSON", False))


SETTINGS = _Settings()
