"""
Database migration utilities.
"""
import os
from sqlalchemy import text

from . import Database
from .models import Base
from ..logging_config import logger


def run_sql_migrations(database: Database):
    """
    Run the SQL scripts in db/scripts, then create missing tables.

    Script files should:
    - Be named with a sortable prefix (e.g., 001_extensions.sql)
    - End with .sql extension
    - Be idempotent (safe to run multiple times)

    Tables and indexes come from the declarative models, so they are
    created after the extensions they depend on.

    Raises:
        Exception: If any migration fails
    """
    migrations_dir = os.path.join(os.path.dirname(__file__), "scripts")

    migration_files = []
    if os.path.exists(migrations_dir):
        migration_files = sorted(
            f for f in os.listdir(migrations_dir)
            if f.endswith(".sql")
        )
    else:
        logger.warning("Migrations directory not found", path=migrations_dir)

    with database.engine.begin() as conn:
        for filename in migration_files:
            filepath = os.path.join(migrations_dir, filename)
            logger.info("Running migration", file=filename)

            with open(filepath, "r", encoding="utf-8") as f:
                sql = f.read()

            conn.execute(text(sql))

    Base.metadata.create_all(database.engine)
    logger.info("Migrations completed", scripts=len(migration_files))
