"""Singleton declarative base.

The rest of the codebase can simply do

    from app.db.base import Base

to declare new ORM models.  Keeping the base in one place ensures that
`Base.metadata.create_all(bind=engine)` sees every mapped class, as long as
``app.models`` has been imported first (see :func:`app.db.database.init_db`).
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

# The global declarative base instance used by every model
Base = declarative_base()

__all__ = ["Base", "utcnow"]


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so every column stays naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
