"""Database configuration and session management."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledgerly.settings import settings


def get_engine_kwargs(database_url: str = None) -> dict:
    """Return SQLAlchemy engine kwargs for the configured backend."""
    url = database_url or settings.database_url
    kwargs = {
        "pool_pre_ping": settings.db_pool_pre_ping,
    }

    # QueuePool sizing only applies to non-sqlite engines.
    if not url.startswith("sqlite"):
        kwargs["pool_recycle"] = settings.db_pool_recycle
        kwargs["pool_timeout"] = settings.db_pool_timeout
        kwargs["pool_use_lifo"] = settings.db_pool_use_lifo
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow

    if url.startswith("postgresql"):
        kwargs["connect_args"] = {"connect_timeout": settings.db_connect_timeout}

    return kwargs


def build_engine(database_url: str = None):
    """Build a database engine using configured pool options."""
    url = database_url or settings.database_url
    return create_engine(url, **get_engine_kwargs(url))


engine = build_engine()

SessionLocal = sessionmaker(bind=engine)


def get_db():
    """Get database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
