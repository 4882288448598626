from __future__ import annotations
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from kozi.settings import SETTINGS
from kozi.utils.dates import iso_now
from kozi.utils.files import read_json, write_json

logger = logging.getLogger(__name__)


class JsonApplicationStore:
    """Job applications in <data_dir>/applications.json, at most one per (job, user)."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or Path(SETTINGS.data_dir) / "applications.json")
        self._lock = threading.Lock()

    def _load(self) -> List[Dict[str, Any]]:
        return read_json(self.path, default=[]) or []

    def has_applied(self, job_id: Any, user_id: str) -> bool:
        return any(
            str(a["job_id"]) == str(job_id) and str(a["user_id"]) == str(user_id)
            for a in self._load()
        )

    def record(self, job_id: Any, user_id: str, **extra: Any) -> Optional[str]:
        """Store an application; None if this user already applied to this job."""
        with self._lock:
            apps = self._load()
            if any(str(a["job_id"]) == str(job_id) and str(a["user_id"]) == str(user_id) for a in apps):
                return None
            application_id = uuid.uuid4().hex
            apps.append({
                "application_id": application_id,
                "job_id": job_id,
                "user_id": str(user_id),
                "status": "submitted",
                "applied_at": iso_now(),
                **extra,
            })
            write_json(self.path, apps)
        logger.info("Application %s recorded (job=%s, user=%s)", application_id, job_id, user_id)
        return application_id

    def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return [a for a in self._load() if str(a["user_id"]) == str(user_id)]
