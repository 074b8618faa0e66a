"""Repository backends for the bridge registries."""

from __future__ import annotations

from typing import Optional

from review_bridge.db import DatabaseManager
from review_bridge.repositories.base import (
    InMemoryRepository,
    Repository,
    RepositoryFactory,
    in_memory_factory,
)
from review_bridge.repositories.sqlalchemy_repository import (
    SqlAlchemyRepository,
    sqlalchemy_factory,
)


def create_repository_factory(
    *,
    backend: str,
    database_url: Optional[str] = None,
    db_manager: Optional[DatabaseManager] = None,
) -> RepositoryFactory:
    normalized = backend.strip().lower()
    if normalized == "inmemory":
        return in_memory_factory()
    if normalized == "database":
        manager = db_manager or DatabaseManager(database_url or "")
        if manager.engine.dialect.name == "sqlite":
            manager.create_all()
        return sqlalchemy_factory(manager)
    raise RuntimeError(f"unsupported STORE_BACKEND: {backend}")


__all__ = [
    "InMemoryRepository",
    "Repository",
    "RepositoryFactory",
    "SqlAlchemyRepository",
    "create_repository_factory",
    "in_memory_factory",
    "sqlalchemy_factory",
]
