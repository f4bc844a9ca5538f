"""Database setup and session management."""

import logging
from collections.abc import Generator
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from wifitrace.config import load_config

logger = logging.getLogger(__name__)

# Created on first use; tests replace it with an in-memory engine
engine: Engine | None = None


def create_db_engine(db_path: Path) -> Engine:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def get_engine(db_path: Path | None = None) -> Engine:
    """Return the shared engine, creating it from db_path or the configured path.

    The first call decides the database file; a later db_path that points
    elsewhere is logged and ignored.
    """
    global engine
    if engine is None:
        engine = create_db_engine(db_path or load_config().db_path)
    elif db_path is not None and engine.url.database != str(db_path):
        logger.warning(
            "Database engine already bound to %s, ignoring %s", engine.url.database, db_path
        )
    return engine


def init_db(bind: Engine | None = None) -> None:
    """Create all tables."""
    import wifitrace.history.models  # noqa: F401

    SQLModel.metadata.create_all(bind or get_engine())


def get_session() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI Depends()."""
    with Session(get_engine()) as session:
        yield session
