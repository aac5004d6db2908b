"""Database engine & session utilities.

Sync engine + classic session maker.  Sessions are created with
``expire_on_commit=False`` because the stores hand detached rows back to
callers that outlive the session.
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.db.base import Base

logger = logging.getLogger(__name__)


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, preparing the SQLite file location when needed."""
    connect_args = {}
    if url.startswith("sqlite"):
        # The API threadpool and the worker thread share the engine.
        connect_args["check_same_thread"] = False
        db_path = url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, future=True, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


logger.info("Creating database engine for %s", settings.DATABASE_URL.split('@')[-1])
engine = make_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

SessionLocal = make_session_factory(engine)


def init_db(bind: Engine = engine) -> None:
    """Create all tables if they do not yet exist. Harmless when they do."""
    from app import models  # noqa: F401  registers every mapped class on Base

    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ensured")

