from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config import settings


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine for ``url``, applying the SQLite specifics when needed."""
    if not url.startswith("sqlite"):
        # For PostgreSQL and other databases
        return create_engine(url, echo=echo, future=True)

    # For SQLite, use StaticPool for in-memory databases and enable foreign keys
    sqlite_engine = create_engine(
        url,
        echo=echo,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool if ":memory:" in url else None,
    )

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.SQLALCHEMY_ECHO)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
