from __future__ import annotations
import asyncio
import logging
import os
from typing import List, Optional, Sequence

from langchain_openai import ChatOpenAI, OpenAIEmbeddings
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from kozi.exceptions import GenerationError
from kozi.orchestrator.sessions import Turn
from kozi.settings import SETTINGS

logger = logging.getLogger(__name__)


def _api_key() -> str:
    api_key = os.getenv("OPENAI_API_KEY", "")
    if not api_key:
        raise GenerationError("OPENAI_API_KEY missing")
    return api_key

def make_client(model: str, temperature: float = 0.1) -> ChatOpenAI:
    return ChatOpenAI(model=model, temperature=temperature, api_key=_api_key())

def make_embeddings(model: str) -> OpenAIEmbeddings:
    return OpenAIEmbeddings(model=model, api_key=_api_key())

def to_messages(turns: Sequence[Turn], system_prompt: str) -> List[BaseMessage]:
    msgs: List[BaseMessage] = [SystemMessage(content=system_prompt)]
    for t in turns:
        if t.sender == "assistant":
            msgs.append(AIMessage(content=t.text))
        else:
            msgs.append(HumanMessage(content=t.text))
    return msgs


class TextGenerator:
    """generate(turns, system_prompt) -> text, bounded by a timeout."""

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.model = model or SETTINGS.openai_model
        self.temperature = SETTINGS.llm_temperature if temperature is None else temperature
        self.timeout_s = timeout_s or SETTINGS.llm_timeout_s
        self._llm: ChatOpenAI | None = None

    def _client(self) -> ChatOpenAI:
        # built lazily so importing/constructing never needs an API key
        if self._llm is None:
            self._llm = make_client(self.model, temperature=self.temperature)
        return self._llm

    async def generate(self, turns: Sequence[Turn], system_prompt: str) -> str:
        msgs = to_messages(turns, system_prompt)
        try:
            resp = await asyncio.wait_for(self._client().ainvoke(msgs), timeout=self.timeout_s)
        except GenerationError:
            raise
        except asyncio.TimeoutError as e:
            raise GenerationError(f"generation timed out after {self.timeout_s:g}s") from e
        except Exception as e:
            raise GenerationError(f"generation failed: {e}") from e
        content = resp.content
        if isinstance(content, list):
            # content blocks: keep the text parts
            content = "".join(c if isinstance(c, str) else str(c.get("text", "")) for c in content)
        return str(content or "")


class Embedder:
    """embed(text) -> fixed-length vector, bounded by a timeout."""

    def __init__(self, model: Optional[str] = None, timeout_s: Optional[float] = None) -> None:
        self.model = model or SETTINGS.embedding_model
        self.timeout_s = timeout_s or SETTINGS.llm_timeout_s
        self._emb: OpenAIEmbeddings | None = None

    async def embed(self, text: str) -> List[float]:
        if self._emb is None:
            self._emb = make_embeddings(self.model)
        try:
            vec = await asyncio.wait_for(self._emb.aembed_query(text), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise GenerationError(f"embedding timed out after {self.timeout_s:g}s") from e
        except Exception as e:
            raise GenerationError(f"embedding failed: {e}") from e
        return [float(x) for x in vec]
