import pytest
from docx import Document

from kozi.rag.knowledge import SEED_DOCUMENTS, KnowledgeLoader, chunk_text, tags_for
from kozi.rag.retrieval import RetrievalService

from conftest import FakeEmbedder, FakeGenerator


def test_chunks_follow_paragraphs():
    text = "First paragraph.\n\nSecond   paragraph\nwraps.\n\n\nThird."
    assert chunk_text(text, max_chars=45) == ["First paragraph.\n\nSecond paragraph wraps.", "Third."]


def test_long_paragraph_is_split_hard():
    chunks = chunk_text("x" * 25, max_chars=10)
    assert chunks == ["x" * 10, "x" * 10, "x" * 5]
    assert chunk_text("") == []


def test_tags_from_filename():
    assert "fees" in tags_for("Kozi Service Agreement.docx")
    assert tags_for("random.pdf") == []


@pytest.mark.asyncio
async def test_loader_ingests_seed_and_local_documents(tmp_path, vector_store):
    docs = tmp_path / "docs"
    docs.mkdir()
    d = Document()
    d.add_paragraph("Workers must arrive on time.")
    d.add_paragraph("")
    d.add_paragraph("Respect the client's home.")
    d.save(str(docs / "Worker Guidelines.docx"))
    (docs / "notes.txt").write_text("ignored", encoding="utf-8")

    retrieval = RetrievalService(vector_store, FakeEmbedder(default=(1.0, 0.0)), FakeGenerator())
    loader = KnowledgeLoader(retrieval, docs)

    added = await loader.load_all()

    assert added == len(SEED_DOCUMENTS) + 1
    local = vector_store.get("worker-guidelines-1")
    assert "arrive on time" in local.text
    assert local.metadata["source"] == "Worker Guidelines.docx"
    assert "conduct" in local.metadata["tags"]

    # second load embeds nothing new
    embedder_calls = len(retrieval.embedder.calls)
    await loader.load_all()
    assert len(retrieval.embedder.calls) == embedder_calls


@pytest.mark.asyncio
async def test_loader_without_docs_folder(tmp_path, vector_store):
    retrieval = RetrievalService(vector_store, FakeEmbedder(default=(1.0, 0.0)), FakeGenerator())
    loader = KnowledgeLoader(retrieval, tmp_path / "missing")
    assert await loader.load_local_documents() == 0
