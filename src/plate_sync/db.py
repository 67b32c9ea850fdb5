import logging
from typing import Iterable

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import StoreUnavailable
from .models import detection_table, metadata

logger = logging.getLogger(__name__)


def create_store_engine(database_url: str) -> Engine:
    """
    Build the one engine shared by every camera. Its pool is the only
    connection management the service does.
    """
    return create_engine(
        database_url,
        connect_args=({"check_same_thread": False} if database_url.startswith("sqlite") else {}),
        pool_pre_ping=True,
    )


def check_connection(engine: Engine) -> None:
    """
    Startup connectivity check. Raises StoreUnavailable if the store can't be reached.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"Could not connect to the database: {e}") from e


def init_db(engine: Engine, table_names: Iterable[str]) -> None:
    """Create the per-camera tables that don't exist yet."""
    tables = [detection_table(name) for name in table_names]
    try:
        metadata.create_all(bind=engine, tables=tables)
    except SQLAlchemyError as e:
        raise StoreUnavailable(f"Failed to create tables: {e}") from e

    logger.info("Tables ready: %s", ", ".join(t.name for t in tables))
