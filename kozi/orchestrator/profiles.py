from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from kozi.settings import SETTINGS
from kozi.utils.files import read_json, write_json

logger = logging.getLogger(__name__)

# Fields that count toward profile completion, with the label shown to users.
PROFILE_FIELDS: Dict[str, str] = {
    "full_name": "full name",
    "phone": "phone number",
    "location": "location",
    "job_category": "job category",
    "experience_level": "experience level",
    "skills": "skills",
    "work_experience": "work experience",
    "education": "education",
    "cv_uploaded": "CV upload",
    "id_uploaded": "ID card upload",
    "photo_uploaded": "profile photo",
}


@dataclass
class ProfileStatus:
    completion_percentage: float
    missing_fields: List[str] = field(default_factory=list)
    profile_data: Dict[str, Any] = field(default_factory=dict)


def compute_status(profile: Dict[str, Any]) -> ProfileStatus:
    missing = [label for key, label in PROFILE_FIELDS.items() if not profile.get(key)]
    filled = len(PROFILE_FIELDS) - len(missing)
    pct = round(filled / len(PROFILE_FIELDS) * 100, 1)
    return ProfileStatus(completion_percentage=pct, missing_fields=missing, profile_data=dict(profile))


class JsonProfileStatusProvider:
    """Profiles keyed by user id in <data_dir>/profiles.json."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or Path(SETTINGS.data_dir) / "profiles.json")
        self._lock = threading.Lock()

    def _all(self) -> Dict[str, Dict[str, Any]]:
        return read_json(self.path, default={}) or {}

    def get_profile_status(self, user_id: str) -> ProfileStatus:
        profile = self._all().get(str(user_id))
        if profile is None:
            logger.debug("No profile for user %s; treating as empty.", user_id)
            profile = {}
        return compute_status(profile)

    def save_profile(self, user_id: str, profile: Dict[str, Any]) -> None:
        with self._lock:
            profiles = self._all()
            profiles[str(user_id)] = {**profiles.get(str(user_id), {}), **profile}
            write_json(self.path, profiles)
