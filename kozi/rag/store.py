# kozi/rag/store.py
from __future__ import annotations

import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from kozi.settings import SETTINGS
from kozi.utils.dates import iso_now
from kozi.utils.files import read_json, write_json

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class KnowledgeDocument:
    id: str
    text: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=iso_now)
    seq: int = 0

    @property
    def dimensions(self) -> int:
        return len(self.embedding)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| |b|), 0.0 for a zero vector, clamped to [-1, 1]."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


class SimilarityStore:
    """
    Embedded knowledge documents, one JSON file each, searched by cosine
    similarity. Every search re-reads the directory: the knowledge base is
    small and changes rarely, so there is no index to keep in sync.
    Writes are serialized; reads take no lock.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or SETTINGS.vector_store_path)
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        logger.info("Vector store initialized at %s", self.path)

    def _file_for(self, doc_id: str) -> Path:
        return self.path / f"{_SAFE_ID.sub('_', doc_id)}.json"

    def _load_all(self) -> List[KnowledgeDocument]:
        if not self.path.exists():
            return []
        docs: List[KnowledgeDocument] = []
        for p in self.path.glob("*.json"):
            try:
                raw = read_json(p)
                docs.append(KnowledgeDocument(**raw))
            except Exception as e:
                logger.warning("Skipping unreadable document %s: %s", p.name, e)
        docs.sort(key=lambda d: (d.seq, d.timestamp, d.id))
        return docs

    def has(self, doc_id: str) -> bool:
        return self._file_for(doc_id).exists()

    def count(self) -> int:
        return len(self._load_all())

    def list_ids(self) -> List[str]:
        return [d.id for d in self._load_all()]

    def get(self, doc_id: str) -> Optional[KnowledgeDocument]:
        p = self._file_for(doc_id)
        raw = read_json(p, default=None)
        return KnowledgeDocument(**raw) if raw else None

    def add(
        self,
        doc_id: str,
        text: str,
        embedding: Sequence[float],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Store one document. False (and nothing written) on a bad embedding."""
        vec = [float(x) for x in embedding]
        if not doc_id or not vec:
            logger.error("Refusing document %r: empty id or embedding", doc_id)
            return False

        with self._write_lock:
            existing = self._load_all()
            others = [d for d in existing if d.id != doc_id]
            if others and others[0].dimensions != len(vec):
                logger.error(
                    "Refusing document %r: embedding has %d dimensions, store has %d",
                    doc_id, len(vec), others[0].dimensions,
                )
                return False
            prev = next((d for d in existing if d.id == doc_id), None)
            seq = prev.seq if prev else (max((d.seq for d in existing), default=0) + 1)
            doc = KnowledgeDocument(
                id=doc_id, text=text, embedding=vec, metadata=dict(metadata or {}), seq=seq
            )
            try:
                write_json(self._file_for(doc_id), asdict(doc))
            except OSError as e:
                logger.error("Failed to write document %r: %s", doc_id, e)
                return False

        logger.info("Document added to vector store: %s", doc_id)
        return True

    def remove(self, doc_id: str) -> bool:
        with self._write_lock:
            p = self._file_for(doc_id)
            if not p.exists():
                return False
            p.unlink()
            return True

    def search(
        self, query_embedding: Sequence[float], limit: int = 5
    ) -> List[Tuple[KnowledgeDocument, float]]:
        if limit <= 0:
            return []
        scored: List[Tuple[KnowledgeDocument, float]] = []
        for doc in self._load_all():
            if doc.dimensions != len(query_embedding):
                logger.warning(
                    "Skipping %s: %d dimensions vs query %d",
                    doc.id, doc.dimensions, len(query_embedding),
                )
                continue
            scored.append((doc, cosine_similarity(query_embedding, doc.embedding)))
        # stable: equal scores keep insertion order
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]
