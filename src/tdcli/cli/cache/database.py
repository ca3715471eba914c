"""Local SQLite database management for the sync cache."""

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import DatabaseError
from sqlalchemy.orm import Session, sessionmaker

from tdcli.cli.cache.models import CacheBase
from tdcli.cli.errors import StoreCorrupt


def get_cache_engine(db_path: Path) -> Engine:
    """Get SQLAlchemy engine for the cache database.

    Args:
        db_path: Location of the SQLite file; parent directories are created.

    Returns:
        SQLAlchemy Engine instance for the cache file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db_url = f"sqlite:///{db_path}"
    return create_engine(db_url, echo=False)


def init_cache_db(engine: Engine) -> None:
    """Initialize the cache database.

    Creates all tables if they don't exist.

    Raises:
        StoreCorrupt: If the file exists but is not a readable SQLite database.
    """
    try:
        CacheBase.metadata.create_all(engine)
    except DatabaseError as e:
        raise StoreCorrupt(f"Cache database is unreadable: {e}") from e


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Get a session factory bound to the cache engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)
