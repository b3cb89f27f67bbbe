from sqlalchemy import Column, Text, Integer, ForeignKey, TIMESTAMP, Index, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declarative_base
from pgvector.sqlalchemy import Vector

from ..config import Settings
from ..errors import DimensionMismatch

# Column width is fixed at table creation; it must match the embedding model.
EMBED_DIM = Settings.from_env().embed_dim

Base = declarative_base()


def check_column_dimension(dimension: int) -> None:
    """
    Fail fast when the configured embedding size differs from the width the
    vector columns are declared with.

    Raises:
        DimensionMismatch: The store would reject every insert and query.
    """
    if dimension != EMBED_DIM:
        raise DimensionMismatch(
            "Configured embedding dimension does not match the vector columns",
            context={"configured": dimension, "column": EMBED_DIM},
        )


class Document(Base):
    __tablename__ = "documents"
    id = Column(UUID(as_uuid=False), primary_key=True, server_default=text("gen_random_uuid()"))
    filename = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    embedding = Column(Vector(EMBED_DIM), nullable=False)
    uploaded_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index(
            "idx_documents_embedding_hnsw",
            "embedding",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )


class Chunk(Base):
    __tablename__ = "chunks"
    id = Column(UUID(as_uuid=False), primary_key=True, server_default=text("gen_random_uuid()"))
    document_id = Column(
        UUID(as_uuid=False),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(EMBED_DIM), nullable=False)

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_chunks_document_index"),
        Index("idx_chunks_document_id", "document_id"),
        Index(
            "idx_chunks_embedding_hnsw",
            "embedding",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )
