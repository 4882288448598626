from __future__ import annotations
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List

from kozi.cv.render import render_cv_pdf
from kozi.settings import SETTINGS
from kozi.utils.dates import iso_now
from kozi.utils.files import read_json, write_json

logger = logging.getLogger(__name__)


class JsonArtifactStore:
    """
    Generated documents: <artifacts_dir>/<artifact_id>.json plus a rendered PDF
    next to it. The JSON file is the artifact; the PDF is a convenience copy.
    """

    def __init__(self, root: str | Path | None = None, *, render_pdf: bool = True) -> None:
        self.root = Path(root or SETTINGS.artifacts_dir)
        self.render_pdf = render_pdf

    def save_generated_document(
        self, user_id: str, structured_data: Dict[str, Any], template_name: str = "professional"
    ) -> str:
        artifact_id = uuid.uuid4().hex
        record = {
            "artifact_id": artifact_id,
            "user_id": str(user_id),
            "template_name": template_name,
            "generated_at": iso_now(),
            "cv_data": structured_data,
            "pdf_path": None,
        }
        if self.render_pdf:
            pdf_path = self.root / f"{artifact_id}.pdf"
            try:
                self.root.mkdir(parents=True, exist_ok=True)
                record["pdf_path"] = render_cv_pdf(str(pdf_path), structured_data, template_name)
            except Exception as e:
                logger.warning("CV PDF rendering failed for %s: %s", artifact_id, e)
        write_json(self.root / f"{artifact_id}.json", record)
        logger.info("Generated document saved: %s (user=%s)", artifact_id, user_id)
        return artifact_id

    def get(self, artifact_id: str) -> Dict[str, Any] | None:
        return read_json(self.root / f"{artifact_id}.json", default=None)

    def list_user_documents(self, user_id: str) -> List[Dict[str, Any]]:
        if not self.root.exists():
            return []
        docs = []
        for p in self.root.glob("*.json"):
            rec = read_json(p, default={}) or {}
            if rec.get("user_id") == str(user_id):
                docs.append({k: rec.get(k) for k in ("artifact_id", "template_name", "generated_at", "pdf_path")})
        return sorted(docs, key=lambda d: d.get("generated_at") or "", reverse=True)
