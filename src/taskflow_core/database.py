"""Database connection and session management."""
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker, Session

from .config import get_settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, echo: bool = False, **kwargs) -> Engine:
    """
    Build an engine for the given URL.

    SQLite gets foreign key enforcement on every connection and its parent
    directory created; other backends get a pre-ping pool.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL
        **kwargs: Extra keyword arguments for ``create_engine``

    Returns:
        Configured engine
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,          # Verify connections before using
        pool_recycle=3600,           # Recycle connections every hour
        **kwargs,
    )


settings = get_settings()

engine = create_db_engine(settings.database_url, echo=settings.sql_echo)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
