"""Database session management."""

from collections.abc import Generator
from typing import Annotated, Any, Dict, Tuple

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stockcount.core.config import settings


def engine_options(database_url: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (connect_args, pool options) suited to the database backend."""
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}, {"pool_pre_ping": True}
    return {}, {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def create_db_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine; SQLite engines get foreign keys enforced."""
    connect_args, pool_config = engine_options(database_url)
    pool_config.update(kwargs)
    db_engine = create_engine(database_url, connect_args=connect_args, echo=False, **pool_config)

    if database_url.startswith("sqlite"):
        @event.listens_for(db_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
