"""
Database connection lifecycle.

One Database object owns the engine (and its connection pool) and the
session factory. It is built at startup, passed to whatever needs it, and
disposed at shutdown.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..logging_config import logger


class Database:
    def __init__(self, url: str, pool_size: int = 5, max_overflow: int = 10, echo: bool = False):
        self.url = url
        self.engine = create_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,  # Verify connections before using
            echo=echo,
        )
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()
        logger.info("Database pool disposed")
