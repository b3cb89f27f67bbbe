"""
PostgreSQL + pgvector implementation of the vector store.
Distances are cosine distances (pgvector ``<=>``), served by HNSW indexes.
"""
import uuid
from contextlib import contextmanager
from typing import Iterator, List, Sequence

from sqlalchemy import text as sa_text
from sqlalchemy.exc import SQLAlchemyError

from . import Database
from .models import Chunk, Document
from ..errors import DocumentNotFound, StorageFailure
from ..logging_config import logger
from ..store import Row, StoreTransaction, VectorStore


class _PgTransaction(StoreTransaction):
    def __init__(self, store: "PgVectorStore", session):
        self._store = store
        self._session = session

    def insert_document(self, filename, content, metadata, embedding):
        self._store.check_dimension(embedding)
        doc = Document(
            filename=filename,
            content=content,
            meta=dict(metadata or {}),
            embedding=list(embedding),
        )
        self._session.add(doc)
        # flush so the server-side id default is returned
        self._session.flush()
        return str(doc.id)

    def insert_chunk(self, document_id, index, content, embedding):
        self._store.check_dimension(embedding)
        self._session.add(Chunk(
            document_id=document_id,
            chunk_index=index,
            content=content,
            embedding=list(embedding),
        ))


class PgVectorStore(VectorStore):
    def __init__(self, database: Database, dimension: int):
        super().__init__(dimension)
        self.database = database

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """
        One session, one transaction. Commits when the block exits cleanly;
        any error rolls everything back.
        """
        try:
            with self.database.SessionLocal() as db, db.begin():
                yield _PgTransaction(self, db)
        except SQLAlchemyError as e:
            logger.error("Storage transaction rolled back", error=str(e))
            raise StorageFailure("Storage write failed; transaction rolled back", cause=e) from e

    def _query(self, sql: str, params: dict) -> List[Row]:
        try:
            with self.database.engine.connect() as conn:
                rows = conn.execute(sa_text(sql), params).mappings().all()
        except SQLAlchemyError as e:
            raise StorageFailure("Storage query failed", cause=e) from e
        return [dict(r) for r in rows]

    def nearest_documents(self, vector: Sequence[float], limit: int) -> List[Row]:
        self.check_dimension(vector)
        return self._query(
            """
            SELECT
                d.id::text AS document_id,
                d.filename,
                d.content,
                d.metadata,
                NULL AS chunk_index,
                d.embedding <=> (:qv)::vector AS distance
            FROM documents d
            ORDER BY d.embedding <=> (:qv)::vector
            LIMIT :k
            """,
            {"qv": list(vector), "k": limit},
        )

    def nearest_chunks(self, vector: Sequence[float], limit: int) -> List[Row]:
        self.check_dimension(vector)
        return self._query(
            """
            SELECT
                d.id::text AS document_id,
                d.filename,
                c.content,
                d.metadata,
                c.chunk_index,
                c.embedding <=> (:qv)::vector AS distance
            FROM chunks c
            JOIN documents d ON d.id = c.document_id
            ORDER BY c.embedding <=> (:qv)::vector
            LIMIT :k
            """,
            {"qv": list(vector), "k": limit},
        )

    def list_documents(self) -> List[Row]:
        """Documents with chunk counts, newest first."""
        return self._query(
            """
            SELECT d.id::text AS id,
                   d.filename,
                   d.metadata,
                   d.uploaded_at,
                   COALESCE(COUNT(c.id), 0) AS num_chunks
            FROM documents d
            LEFT JOIN chunks c ON c.document_id = d.id
            GROUP BY d.id
            ORDER BY d.uploaded_at DESC
            """,
            {},
        )

    def delete_document(self, document_id: str) -> None:
        try:
            uuid.UUID(document_id)
        except ValueError:
            raise DocumentNotFound("Document not found", context={"document_id": document_id})
        try:
            with self.database.SessionLocal() as db, db.begin():
                res = db.execute(
                    sa_text("DELETE FROM documents WHERE id = CAST(:id AS uuid) RETURNING id"),
                    {"id": document_id},
                ).first()
        except SQLAlchemyError as e:
            raise StorageFailure("Delete failed", cause=e, context={"document_id": document_id}) from e
        # chunks go with ON DELETE CASCADE
        if not res:
            raise DocumentNotFound("Document not found", context={"document_id": document_id})

    def close(self) -> None:
        self.database.dispose()
