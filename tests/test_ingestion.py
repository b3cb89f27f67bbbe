"""Tests for the ingestion pipeline: partial-batch tolerance, atomic writes, ordering."""
import asyncio
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from docsearch.chunking import chunk_text
from docsearch.errors import DimensionMismatch, EmbeddingFailure, StorageFailure, ValidationFailure
from docsearch.fusion import fuse_embeddings
from docsearch.services.ingestion import IngestionPipeline
from docsearch.store import MemoryVectorStore

from .fakes import DIM, FakeEmbedder, letter_vector, paragraph

TAGS = ["alpha", "bravo", "charlie", "delta"]
TEXT = "\n\n".join(paragraph(t) for t in TAGS)


class FlakyStore(MemoryVectorStore):
    """Fails while inserting the chunk with the given index."""

    def __init__(self, dimension, fail_index):
        super().__init__(dimension)
        self.fail_index = fail_index

    @contextmanager
    def transaction(self):
        with super().transaction() as tx:
            insert_chunk = tx.insert_chunk

            def failing_insert(document_id, index, content, embedding):
                if index == self.fail_index:
                    raise StorageFailure("disk full", context={"chunk_index": index})
                insert_chunk(document_id, index, content, embedding)

            tx.insert_chunk = failing_insert
            yield tx


def _ingest(pipeline, text=TEXT, filename="report.txt", metadata=None):
    return asyncio.run(pipeline.ingest(filename, text, metadata))


def test_every_chunk_stored_with_fused_embedding(store):
    pipeline = IngestionPipeline(FakeEmbedder(), store, chunk_max_chars=150, embed_workers=2)

    doc_id = _ingest(pipeline, metadata={"mime_type": "text/plain"})

    parts = chunk_text(TEXT, 150)
    assert len(parts) == len(TAGS)
    rows = store.chunk_rows(doc_id)
    assert [r["chunk_index"] for r in rows] == [0, 1, 2, 3]
    assert [r["content"] for r in rows] == parts

    doc = store.document_row(doc_id)
    assert doc["content"] == TEXT
    assert doc["metadata"] == {"mime_type": "text/plain"}
    expected = fuse_embeddings([letter_vector(p) for p in parts])
    assert list(doc["embedding"]) == pytest.approx(expected)


def test_failed_chunk_is_dropped_and_survivors_fused(store):
    embedder = FakeEmbedder(fail_when=lambda text: "bravo" in text)
    pipeline = IngestionPipeline(embedder, store, chunk_max_chars=150)

    doc_id = _ingest(pipeline)

    rows = store.chunk_rows(doc_id)
    assert [r["chunk_index"] for r in rows] == [0, 2, 3]
    survivors = [p for p in chunk_text(TEXT, 150) if "bravo" not in p]
    doc = store.document_row(doc_id)
    assert list(doc["embedding"]) == pytest.approx(fuse_embeddings([letter_vector(p) for p in survivors]))


def test_all_chunks_failing_writes_nothing(store):
    store.transaction = MagicMock(wraps=store.transaction)
    pipeline = IngestionPipeline(FakeEmbedder(fail_when=lambda text: True), store, chunk_max_chars=150)

    with pytest.raises(EmbeddingFailure) as exc:
        _ingest(pipeline)

    assert exc.value.context["filename"] == "report.txt"
    store.transaction.assert_not_called()
    assert store.list_documents() == []


def test_storage_error_rolls_back_whole_document():
    store = FlakyStore(DIM, fail_index=2)
    pipeline = IngestionPipeline(FakeEmbedder(), store, chunk_max_chars=150)

    with pytest.raises(StorageFailure):
        _ingest(pipeline)

    assert store.list_documents() == []


def test_dimension_mismatch_is_fatal(store):
    embedder = FakeEmbedder(vector_fn=lambda text: [1.0, 2.0])
    pipeline = IngestionPipeline(embedder, store, chunk_max_chars=150)

    with pytest.raises(DimensionMismatch):
        _ingest(pipeline)

    assert store.list_documents() == []


@pytest.mark.parametrize("text", ["", "   \n\n\t "])
def test_empty_text_is_rejected(store, text):
    pipeline = IngestionPipeline(FakeEmbedder(), store)
    with pytest.raises(ValidationFailure):
        _ingest(pipeline, text=text)


def test_missing_filename_is_rejected(store):
    pipeline = IngestionPipeline(FakeEmbedder(), store)
    with pytest.raises(ValidationFailure):
        _ingest(pipeline, filename=" ")


def test_concurrency_is_bounded(store):
    text = "\n\n".join(paragraph(f"part{i}") for i in range(12))
    embedder = FakeEmbedder(delay=0.02)
    pipeline = IngestionPipeline(embedder, store, chunk_max_chars=150, embed_workers=3)

    _ingest(pipeline, text=text)

    assert len(embedder.calls) == 12
    assert 1 <= embedder.max_in_flight <= 3


def test_index_follows_source_order_not_completion_order(store):
    parts = chunk_text(TEXT, 150)
    # earlier chunks finish last
    delays = {p: 0.01 * (len(parts) - i) for i, p in enumerate(parts)}
    embedder = FakeEmbedder(delay=lambda text: delays[text])
    pipeline = IngestionPipeline(embedder, store, chunk_max_chars=150, embed_workers=4)

    doc_id = _ingest(pipeline)

    rows = store.chunk_rows(doc_id)
    assert [(r["chunk_index"], r["content"]) for r in rows] == list(enumerate(parts))


def test_reingest_gives_identical_chunks(store):
    pipeline = IngestionPipeline(FakeEmbedder(), store, chunk_max_chars=150)

    first = _ingest(pipeline)
    second = _ingest(pipeline)

    assert first != second
    assert [r["content"] for r in store.chunk_rows(first)] == [r["content"] for r in store.chunk_rows(second)]


def test_worker_count_must_be_positive(store):
    with pytest.raises(ValueError):
        IngestionPipeline(FakeEmbedder(), store, embed_workers=0)


def test_unexpected_provider_exception_only_costs_that_chunk(store):
    def vector_fn(text):
        if "charlie" in text:
            raise RuntimeError("socket closed")
        return letter_vector(text)

    pipeline = IngestionPipeline(FakeEmbedder(vector_fn=vector_fn), store, chunk_max_chars=150)

    doc_id = _ingest(pipeline)

    assert [r["chunk_index"] for r in store.chunk_rows(doc_id)] == [0, 1, 3]


def test_cancellation_abandons_pending_embeddings(store):
    text = "\n\n".join(paragraph(f"part{i}") for i in range(8))
    embedder = FakeEmbedder(delay=0.1)
    store.transaction = MagicMock(wraps=store.transaction)
    pipeline = IngestionPipeline(embedder, store, chunk_max_chars=150, embed_workers=1)

    async def run():
        task = asyncio.ensure_future(pipeline.ingest("report.txt", text))
        await asyncio.sleep(0.15)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())

    assert len(embedder.calls) < 8
    store.transaction.assert_not_called()
    assert store.list_documents() == []
