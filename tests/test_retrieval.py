"""Tests for hybrid document/chunk ranking."""
import asyncio
from unittest.mock import MagicMock

import pytest

from docsearch.errors import DimensionMismatch, EmbeddingFailure, ProviderError, StorageFailure, ValidationFailure
from docsearch.services.ingestion import IngestionPipeline
from docsearch.services.retrieval import RetrievalRanker, merge_ranked
from docsearch.store import MemoryVectorStore

from .fakes import DIM, FakeEmbedder, paragraph


def _row(doc_id, distance, content="text", metadata=None, chunk_index=None, filename="f.txt"):
    return {
        "document_id": doc_id,
        "filename": filename,
        "content": content,
        "metadata": metadata,
        "distance": distance,
        "chunk_index": chunk_index,
    }


class TestMergeRanked:
    def test_union_sorted_and_truncated(self):
        docs = [_row("d1", 0.30), _row("d2", 0.50)]
        chunks = [_row("d1", 0.10, chunk_index=2), _row("d3", 0.40, chunk_index=0), _row("d2", 0.90, chunk_index=1)]

        hits = merge_ranked(docs, chunks, limit=4)

        assert [(h.document_id, h.granularity) for h in hits] == [
            ("d1", "chunk"),
            ("d1", "document"),
            ("d3", "chunk"),
            ("d2", "document"),
        ]
        assert [h.distance for h in hits] == [0.10, 0.30, 0.40, 0.50]

    def test_same_document_kept_at_both_granularities(self):
        hits = merge_ranked([_row("d1", 0.2)], [_row("d1", 0.25, chunk_index=0)], limit=5)
        assert [h.document_id for h in hits] == ["d1", "d1"]

    def test_ties_keep_input_order(self):
        docs = [_row("d1", 0.5), _row("d2", 0.5)]
        chunks = [_row("c1", 0.5, chunk_index=0), _row("c2", 0.5, chunk_index=1)]

        hits = merge_ranked(docs, chunks, limit=10)

        assert [h.document_id for h in hits] == ["d1", "d2", "c1", "c2"]

    def test_null_content_and_metadata_become_empty(self):
        hit = merge_ranked([_row("d1", 0.1, content=None, metadata=None)], [], limit=1)[0]
        assert hit.content == ""
        assert hit.metadata == {}
        assert hit.chunk_index is None
        assert hit.score == pytest.approx(0.9)

    def test_chunk_hits_carry_their_index(self):
        hit = merge_ranked([], [_row("d1", 0.1, chunk_index=7)], limit=1)[0]
        assert hit.granularity == "chunk"
        assert hit.chunk_index == 7

    def test_empty(self):
        assert merge_ranked([], [], limit=5) == []


@pytest.fixture
def indexed(store):
    """Store holding two documents: one single-chunk, one with three chunks."""
    embedder = FakeEmbedder()
    pipeline = IngestionPipeline(embedder, store, chunk_max_chars=150)
    single = asyncio.run(pipeline.ingest("single.txt", paragraph("echo")))
    multi = asyncio.run(pipeline.ingest(
        "multi.txt",
        "\n\n".join(paragraph(t) for t in ["fox", "golf", "hotel"]),
    ))
    return embedder, single, multi


def test_exact_chunk_match_ranks_first(store, indexed):
    embedder, single, _ = indexed
    ranker = RetrievalRanker(embedder, store)

    hits = asyncio.run(ranker.search(paragraph("echo"), limit=5))

    assert hits[0].document_id == single
    assert hits[0].distance == pytest.approx(0.0, abs=1e-9)


def test_results_bounded_and_sorted(store, indexed):
    embedder, _, _ = indexed
    ranker = RetrievalRanker(embedder, store)

    hits = asyncio.run(ranker.search("a big cat dug a bed", limit=5))

    assert len(hits) == 5
    distances = [h.distance for h in hits]
    assert distances == sorted(distances)
    assert {h.granularity for h in hits} <= {"document", "chunk"}


def test_limit_applies_to_each_lookup(store, indexed):
    embedder, _, _ = indexed
    store.nearest_documents = MagicMock(wraps=store.nearest_documents)
    store.nearest_chunks = MagicMock(wraps=store.nearest_chunks)
    ranker = RetrievalRanker(embedder, store)

    hits = asyncio.run(ranker.search("query", limit=2))

    assert len(hits) == 2
    assert store.nearest_documents.call_args.args[1] == 2
    assert store.nearest_chunks.call_args.args[1] == 2


def test_empty_store_returns_no_hits(store):
    ranker = RetrievalRanker(FakeEmbedder(), store)
    assert asyncio.run(ranker.search("anything", limit=5)) == []


@pytest.mark.parametrize("query,limit", [("", 5), ("   ", 5), ("ok", 0)])
def test_invalid_requests(store, query, limit):
    ranker = RetrievalRanker(FakeEmbedder(), store)
    with pytest.raises(ValidationFailure):
        asyncio.run(ranker.search(query, limit=limit))


def test_query_embedding_failure_surfaces(store, indexed):
    ranker = RetrievalRanker(FakeEmbedder(fail_when=lambda text: True), store)

    with pytest.raises(EmbeddingFailure) as exc:
        asyncio.run(ranker.search("query", limit=5))

    assert isinstance(exc.value, ProviderError)


def test_storage_failure_returns_no_partial_results(store, indexed):
    embedder, _, _ = indexed
    store.nearest_chunks = MagicMock(side_effect=StorageFailure("connection reset"))
    ranker = RetrievalRanker(embedder, store)

    with pytest.raises(StorageFailure):
        asyncio.run(ranker.search("query", limit=5))


def test_query_dimension_must_match_store():
    store = MemoryVectorStore(DIM + 1)
    ranker = RetrievalRanker(FakeEmbedder(), store)

    with pytest.raises(DimensionMismatch):
        asyncio.run(ranker.search("query", limit=5))
