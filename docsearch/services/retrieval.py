"""
Query-time ranking over both embedding granularities.
"""
import asyncio
from time import perf_counter
from typing import Any, Dict, Iterable, List

from ..embedding import EmbeddingClient
from ..errors import ValidationFailure
from ..logging_config import logger
from ..schemas import SearchHit
from ..store import VectorStore


def _to_hit(row: Dict[str, Any], granularity: str) -> SearchHit:
    distance = float(row["distance"])
    return SearchHit(
        document_id=str(row["document_id"]),
        filename=row.get("filename") or "",
        content=row.get("content") or "",
        distance=distance,
        score=1.0 - distance,
        metadata=row.get("metadata") or {},
        granularity=granularity,
        chunk_index=row.get("chunk_index") if granularity == "chunk" else None,
    )


def merge_ranked(
    document_rows: Iterable[Dict[str, Any]],
    chunk_rows: Iterable[Dict[str, Any]],
    limit: int,
) -> List[SearchHit]:
    """
    Union document and chunk candidates, order by distance, keep ``limit``.

    The same document may appear at both granularities. Equal distances
    keep input order: document rows before chunk rows.
    """
    candidates = [(row, "document") for row in document_rows]
    candidates += [(row, "chunk") for row in chunk_rows]
    candidates.sort(key=lambda pair: float(pair[0]["distance"]))
    return [_to_hit(row, granularity) for row, granularity in candidates[:limit]]


class RetrievalRanker:
    def __init__(self, embedder: EmbeddingClient, store: VectorStore):
        self.embedder = embedder
        self.store = store

    async def search(self, query: str, limit: int = 5) -> List[SearchHit]:
        """
        Return at most ``limit`` hits, nearest first.

        Raises:
            ValidationFailure: Empty query or non-positive limit.
            EmbeddingFailure: The query could not be embedded.
            DimensionMismatch: Query and stored vectors differ in length.
            StorageFailure: Either lookup failed; no partial results.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationFailure("Query is required")
        if limit < 1:
            raise ValidationFailure("limit must be >= 1", context={"limit": limit})

        t = perf_counter()
        qv = await asyncio.to_thread(self.embedder.embed, query.strip())

        document_rows, chunk_rows = await asyncio.gather(
            asyncio.to_thread(self.store.nearest_documents, qv, limit),
            asyncio.to_thread(self.store.nearest_chunks, qv, limit),
        )
        hits = merge_ranked(document_rows, chunk_rows, limit)

        logger.info(
            "Search completed",
            documents=len(document_rows),
            chunks=len(chunk_rows),
            hits=len(hits),
            time_ms=round((perf_counter() - t) * 1000, 2),
        )
        return hits
