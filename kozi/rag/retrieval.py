# kozi/rag/retrieval.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from kozi.llm.prompts import (
    CONTEXT_SECTION,
    MISSING_FIELDS_LINE,
    SYSTEM_KOZI_AGENT,
    USER_STATUS_SECTION,
)
from kozi.orchestrator.profiles import ProfileStatus
from kozi.orchestrator.sessions import USER, Turn
from kozi.rag.store import SimilarityStore
from kozi.settings import SETTINGS

logger = logging.getLogger(__name__)


class RetrievalService:
    """Query -> relevant knowledge text -> system prompt -> generated answer."""

    def __init__(
        self,
        store: SimilarityStore,
        embedder: Any,
        generator: Any,
        *,
        threshold: Optional[float] = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.generator = generator
        self.threshold = SETTINGS.relevance_threshold if threshold is None else threshold

    async def add_document(
        self,
        doc_id: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        *,
        force: bool = False,
    ) -> bool:
        """Embed then store. Existing ids are left alone unless force=True."""
        if not force and self.store.has(doc_id):
            logger.debug("Knowledge document %s already stored; skipping.", doc_id)
            return True
        embedding = await self.embedder.embed(text)
        ok = self.store.add(doc_id, text, embedding, metadata or {})
        if ok:
            logger.info("Knowledge document added: %s (type=%s)", doc_id, (metadata or {}).get("type"))
        return ok

    async def get_relevant_context(self, query: str, limit: Optional[int] = None) -> str:
        """Texts scoring above the threshold, blank-line separated; "" on any failure."""
        limit = SETTINGS.context_limit if limit is None else limit
        try:
            query_vec = await self.embedder.embed(query)
            results = self.store.search(query_vec, limit)
        except Exception as e:
            logger.error("Context retrieval failed for %r: %s", query, e)
            return ""

        relevant = [doc.text for doc, score in results if score > self.threshold]
        logger.info(
            "Retrieved context: %d results, %d above %.2f", len(results), len(relevant), self.threshold
        )
        return "\n\n".join(relevant)

    def build_system_prompt(self, context: str, profile: Optional[ProfileStatus] = None) -> str:
        prompt = SYSTEM_KOZI_AGENT
        if context:
            prompt += CONTEXT_SECTION.format(context=context)
        if profile is not None:
            prompt += USER_STATUS_SECTION.format(completion=profile.completion_percentage)
            if profile.missing_fields:
                prompt += MISSING_FIELDS_LINE.format(fields=", ".join(profile.missing_fields))
        return prompt

    async def generate_contextual_response(
        self,
        message: str,
        recent_turns: Sequence[Turn] = (),
        profile: Optional[ProfileStatus] = None,
    ) -> str:
        context = await self.get_relevant_context(message)
        system_prompt = self.build_system_prompt(context, profile)

        turns: List[Turn] = list(recent_turns)
        if not turns or turns[-1].sender != USER or turns[-1].text != message:
            turns.append(Turn(sender=USER, text=message))

        response = await self.generator.generate(turns, system_prompt)
        logger.info("Contextual response generated (context=%s)", bool(context))
        return response
