"""
Ingestion pipeline.
Chunk → embed (bounded concurrency) → fuse → one atomic write per document.
"""
import asyncio
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, List, Optional

from ..chunking import chunk_text
from ..embedding import EmbeddingClient
from ..errors import DimensionMismatch, EmbeddingFailure, ValidationFailure
from ..fusion import fuse_embeddings
from ..logging_config import logger
from ..store import VectorStore

DEFAULT_CHUNK_MAX_CHARS = 8000
DEFAULT_EMBED_WORKERS = 4


@dataclass(frozen=True)
class EmbeddedChunk:
    index: int
    content: str
    embedding: List[float]


class IngestionPipeline:
    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStore,
        chunk_max_chars: int = DEFAULT_CHUNK_MAX_CHARS,
        embed_workers: int = DEFAULT_EMBED_WORKERS,
    ):
        if embed_workers < 1:
            raise ValueError("embed_workers must be >= 1")
        self.embedder = embedder
        self.store = store
        self.chunk_max_chars = chunk_max_chars
        self.embed_workers = embed_workers

    async def ingest(
        self,
        filename: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Ingest one document and return its store-assigned id.

        Chunks whose embedding call fails are skipped; the document is
        stored with the survivors and an embedding fused from them.

        Raises:
            ValidationFailure: Missing filename or no text to index.
            EmbeddingFailure: No chunk could be embedded.
            DimensionMismatch: The provider returned vectors of the wrong size.
            StorageFailure: The write was rolled back.
        """
        if not filename or not filename.strip():
            raise ValidationFailure("Filename is required")
        if not isinstance(text, str) or not text.strip():
            raise ValidationFailure("Document has no extractable text", context={"filename": filename})

        t = perf_counter()
        parts = chunk_text(text, self.chunk_max_chars)
        if not parts:
            raise ValidationFailure("Document produced no chunks", context={"filename": filename})
        logger.info("Created chunks", filename=filename, chunk_count=len(parts))

        embedded = await self._embed_chunks(filename, parts)
        if not embedded:
            raise EmbeddingFailure(
                "No chunk could be embedded",
                context={"filename": filename, "chunks": len(parts)},
            )

        doc_embedding = fuse_embeddings([c.embedding for c in embedded])

        # Runs on a worker thread: if the caller is cancelled from here on,
        # the transaction still finishes with a commit or a rollback.
        doc_id = await asyncio.to_thread(
            self._write, filename, text, metadata or {}, doc_embedding, embedded
        )

        logger.info(
            "Document ingested",
            filename=filename,
            doc_id=doc_id,
            chunks=len(embedded),
            dropped=len(parts) - len(embedded),
            time_ms=round((perf_counter() - t) * 1000, 2),
        )
        return doc_id

    async def _embed_chunks(self, filename: str, parts: List[str]) -> List[EmbeddedChunk]:
        # one semaphore per document: ingestions never share in-process state
        gate = asyncio.Semaphore(self.embed_workers)
        tasks = [
            asyncio.ensure_future(self._embed_one(gate, filename, index, part))
            for index, part in enumerate(parts)
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # cancellation or a fatal error: abandon whatever is still queued
            for task in tasks:
                task.cancel()
            raise
        return [r for r in results if r is not None]

    async def _embed_one(
        self,
        gate: asyncio.Semaphore,
        filename: str,
        index: int,
        content: str,
    ) -> Optional[EmbeddedChunk]:
        async with gate:
            try:
                vec = await asyncio.to_thread(self.embedder.embed, content)
            except DimensionMismatch:
                raise
            except Exception as e:
                # any other provider failure only costs this chunk
                logger.warning(
                    "Chunk embedding failed; skipping chunk",
                    filename=filename,
                    chunk_index=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None
        return EmbeddedChunk(index=index, content=content, embedding=vec)

    def _write(
        self,
        filename: str,
        text: str,
        metadata: Dict[str, Any],
        doc_embedding: List[float],
        chunks: List[EmbeddedChunk],
    ) -> str:
        with self.store.transaction() as tx:
            doc_id = tx.insert_document(filename, text, metadata, doc_embedding)
            for chunk in chunks:
                tx.insert_chunk(doc_id, chunk.index, chunk.content, chunk.embedding)
        return doc_id
