"""
Vector store contract and an in-process implementation.

Writes go through ``transaction()``: everything inserted inside the block
becomes visible at once on a clean exit and is discarded if the block
raises. Nearest-neighbour lookups return plain row dicts ordered by
ascending cosine distance:

    {"document_id", "filename", "content", "metadata", "distance",
     "chunk_index"}   # chunk_index is None for document rows
"""
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from threading import Lock
from typing import Any, ContextManager, Dict, Iterator, List, Optional, Sequence

import numpy as np

from .errors import DimensionMismatch, DocumentNotFound, StorageFailure

Row = Dict[str, Any]


class StoreTransaction(ABC):
    @abstractmethod
    def insert_document(
        self,
        filename: str,
        content: str,
        metadata: Dict[str, Any],
        embedding: Sequence[float],
    ) -> str:
        """Insert a document row and return its store-assigned id."""

    @abstractmethod
    def insert_chunk(
        self,
        document_id: str,
        index: int,
        content: str,
        embedding: Sequence[float],
    ) -> None:
        ...


class VectorStore(ABC):
    def __init__(self, dimension: int):
        self.dimension = dimension

    def check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatch(
                "Vector length does not match the store dimension",
                context={"expected": self.dimension, "actual": len(vector)},
            )

    @abstractmethod
    def transaction(self) -> ContextManager[StoreTransaction]:
        ...

    @abstractmethod
    def nearest_documents(self, vector: Sequence[float], limit: int) -> List[Row]:
        ...

    @abstractmethod
    def nearest_chunks(self, vector: Sequence[float], limit: int) -> List[Row]:
        """Nearest chunks, each joined to its parent document's filename and metadata."""

    @abstractmethod
    def list_documents(self) -> List[Row]:
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Delete a document and its chunks. Raises DocumentNotFound."""

    def close(self) -> None:
        pass


def cosine_distance(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Row-wise ``1 - cos(row, vector)``; zero vectors get distance 1."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    dots = matrix @ vector
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return 1.0 - sims


class _MemoryTransaction(StoreTransaction):
    def __init__(self, store: "MemoryVectorStore"):
        self._store = store
        self.documents: Dict[str, Row] = {}
        self.chunks: List[Row] = []

    def insert_document(self, filename, content, metadata, embedding):
        self._store.check_dimension(embedding)
        doc_id = str(uuid.uuid4())
        self.documents[doc_id] = {
            "id": doc_id,
            "filename": filename,
            "content": content,
            "metadata": dict(metadata or {}),
            "embedding": np.asarray(embedding, dtype=np.float64),
            "uploaded_at": datetime.now(timezone.utc),
        }
        return doc_id

    def insert_chunk(self, document_id, index, content, embedding):
        self._store.check_dimension(embedding)
        if document_id not in self.documents and not self._store.has_document(document_id):
            raise StorageFailure(
                "Chunk references an unknown document",
                context={"document_id": document_id, "chunk_index": index},
            )
        key = (document_id, index)
        if any((c["document_id"], c["chunk_index"]) == key for c in self.chunks):
            raise StorageFailure(
                "Duplicate chunk index",
                context={"document_id": document_id, "chunk_index": index},
            )
        self.chunks.append({
            "document_id": document_id,
            "chunk_index": index,
            "content": content,
            "embedding": np.asarray(embedding, dtype=np.float64),
        })


class MemoryVectorStore(VectorStore):
    """
    Brute-force store kept in process memory.

    Useful for local runs (VECTOR_STORE=memory) and tests; contents are
    lost on shutdown.
    """

    def __init__(self, dimension: int):
        super().__init__(dimension)
        self._lock = Lock()
        self._documents: Dict[str, Row] = {}
        self._chunks: List[Row] = []

    def has_document(self, document_id: str) -> bool:
        with self._lock:
            return document_id in self._documents

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        tx = _MemoryTransaction(self)
        yield tx
        # commit: only reached when the block did not raise
        with self._lock:
            self._documents.update(tx.documents)
            self._chunks.extend(tx.chunks)

    def _rank(self, rows: List[Row], vector: Sequence[float], limit: int) -> List[Row]:
        self.check_dimension(vector)
        if not rows or limit < 1:
            return []
        matrix = np.vstack([r["embedding"] for r in rows])
        distances = cosine_distance(matrix, np.asarray(vector, dtype=np.float64))
        order = np.argsort(distances, kind="stable")[:limit]
        return [dict(rows[i], distance=float(distances[i])) for i in order]

    def nearest_documents(self, vector, limit):
        with self._lock:
            docs = list(self._documents.values())
        ranked = self._rank(docs, vector, limit)
        return [
            {
                "document_id": r["id"],
                "filename": r["filename"],
                "content": r["content"],
                "metadata": r["metadata"],
                "distance": r["distance"],
                "chunk_index": None,
            }
            for r in ranked
        ]

    def nearest_chunks(self, vector, limit):
        with self._lock:
            chunks = list(self._chunks)
            docs = dict(self._documents)
        ranked = self._rank(chunks, vector, limit)
        return [
            {
                "document_id": r["document_id"],
                "filename": docs[r["document_id"]]["filename"],
                "content": r["content"],
                "metadata": docs[r["document_id"]]["metadata"],
                "distance": r["distance"],
                "chunk_index": r["chunk_index"],
            }
            for r in ranked
        ]

    def list_documents(self) -> List[Row]:
        with self._lock:
            counts: Dict[str, int] = {}
            for c in self._chunks:
                counts[c["document_id"]] = counts.get(c["document_id"], 0) + 1
            docs = sorted(self._documents.values(), key=lambda d: d["uploaded_at"], reverse=True)
            return [
                {
                    "id": d["id"],
                    "filename": d["filename"],
                    "metadata": d["metadata"],
                    "uploaded_at": d["uploaded_at"],
                    "num_chunks": counts.get(d["id"], 0),
                }
                for d in docs
            ]

    def chunk_rows(self, document_id: str) -> List[Row]:
        """Chunks of one document ordered by index."""
        with self._lock:
            rows = [dict(c) for c in self._chunks if c["document_id"] == document_id]
        return sorted(rows, key=lambda c: c["chunk_index"])

    def document_row(self, document_id: str) -> Optional[Row]:
        with self._lock:
            doc = self._documents.get(document_id)
            return dict(doc) if doc else None

    def delete_document(self, document_id: str) -> None:
        with self._lock:
            if document_id not in self._documents:
                raise DocumentNotFound("Document not found", context={"document_id": document_id})
            del self._documents[document_id]
            # chunks never outlive their document
            self._chunks = [c for c in self._chunks if c["document_id"] != document_id]
