"""
Composition root.
Builds the long-lived collaborators once and tears them down at shutdown.
"""
from dataclasses import dataclass
from typing import Optional

from openai import OpenAI

from .config import Settings
from .db import Database
from .embedding import EmbeddingClient, build_embedding_client
from .logging_config import logger
from .services.answer_service import AnswerService
from .services.ingestion import IngestionPipeline
from .services.retrieval import RetrievalRanker
from .store import MemoryVectorStore, VectorStore


@dataclass
class Services:
    settings: Settings
    embedder: EmbeddingClient
    store: VectorStore
    pipeline: IngestionPipeline
    ranker: RetrievalRanker
    answers: AnswerService
    database: Optional[Database] = None

    def close(self) -> None:
        self.embedder.close()
        self.store.close()


def assemble(
    settings: Settings,
    embedder: EmbeddingClient,
    store: VectorStore,
    chat_client: Optional[OpenAI] = None,
    database: Optional[Database] = None,
) -> Services:
    """Wire pipeline, ranker and answer service around one embedder and one store."""
    pipeline = IngestionPipeline(
        embedder,
        store,
        chunk_max_chars=settings.chunk_max_chars,
        embed_workers=settings.embed_workers,
    )
    ranker = RetrievalRanker(embedder, store)
    answers = AnswerService(ranker, chat_client, settings.openai_model)
    return Services(
        settings=settings,
        embedder=embedder,
        store=store,
        pipeline=pipeline,
        ranker=ranker,
        answers=answers,
        database=database,
    )


def build_services(settings: Settings) -> Services:
    """Create database pool, store, embedder and services from settings."""
    database = None
    if settings.vector_store == "pgvector":
        from .db.migrations import run_sql_migrations
        from .db.models import check_column_dimension
        from .db.store import PgVectorStore

        check_column_dimension(settings.embed_dim)
        database = Database(settings.database_url)
        logger.info("Running database migrations...")
        run_sql_migrations(database)
        store: VectorStore = PgVectorStore(database, settings.embed_dim)
    else:
        logger.warning("Using in-memory vector store; data is lost on restart")
        store = MemoryVectorStore(settings.embed_dim)

    embedder = build_embedding_client(settings)
    chat_client = OpenAI(api_key=settings.openai_api_key) if settings.openai_api_key else None
    logger.info(
        "Services ready",
        store=settings.vector_store,
        embed_provider=settings.embed_provider,
        embed_model=settings.embed_model,
        embed_dim=settings.embed_dim,
    )
    return assemble(settings, embedder, store, chat_client=chat_client, database=database)
