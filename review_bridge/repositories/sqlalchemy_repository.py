"""Repository backed by the generic bridge_records table."""

from __future__ import annotations

from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from review_bridge.db import DatabaseManager
from review_bridge.models.bridge_record import BridgeRecord
from review_bridge.repositories.base import Repository, RepositoryFactory

T = TypeVar("T", bound=BaseModel)


class SqlAlchemyRepository(Generic[T]):
    """One namespace of bridge_records. Each call is its own transaction."""

    def __init__(self, db_manager: DatabaseManager, namespace: str, model: Type[T]) -> None:
        self._db = db_manager
        self.namespace = namespace
        self.model = model

    def get(self, key: str) -> Optional[T]:
        with self._db.db_session() as session:
            row = session.get(BridgeRecord, (self.namespace, key))
            if row is None:
                return None
            return self.model.model_validate(row.payload)

    def put(self, key: str, value: T) -> None:
        payload = value.model_dump(mode="json")
        with self._db.db_session() as session:
            row = session.get(BridgeRecord, (self.namespace, key))
            if row is None:
                session.add(
                    BridgeRecord(
                        namespace=self.namespace,
                        record_key=key,
                        payload=payload,
                    )
                )
                return
            row.payload = payload

    def delete(self, key: str) -> bool:
        with self._db.db_session() as session:
            row = session.get(BridgeRecord, (self.namespace, key))
            if row is None:
                return False
            session.delete(row)
            return True

    def list(self) -> List[T]:
        with self._db.db_session() as session:
            rows = (
                session.query(BridgeRecord)
                .filter(BridgeRecord.namespace == self.namespace)
                .order_by(BridgeRecord.created_at, BridgeRecord.record_key)
                .all()
            )
            return [self.model.model_validate(row.payload) for row in rows]


def sqlalchemy_factory(db_manager: DatabaseManager) -> RepositoryFactory:
    def _factory(namespace: str, model: Type[BaseModel]) -> Repository:
        return SqlAlchemyRepository(db_manager, namespace, model)

    return _factory
