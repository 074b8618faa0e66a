"""SQLAlchemy base, engine and session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class DatabaseManager:
    """Owns one engine and its session factory."""

    def __init__(self, database_url: str, engine: Optional[Engine] = None) -> None:
        if not database_url and engine is None:
            raise RuntimeError("DATABASE_URL is required for STORE_BACKEND=database")
        self.engine = engine or _build_engine(database_url)
        self.session_factory = sessionmaker(
            self.engine, expire_on_commit=False, future=True
        )

    def create_all(self) -> None:
        """Create tables directly (sqlite/dev); production uses alembic."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # In-memory sqlite must share one connection across threads
        return create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, future=True, pool_pre_ping=True)
