"""
Repository contract used by every bridge registry.

Registries never hold entity state themselves; they read and write through a
Repository so the backing store can be swapped (in-memory, SQL).
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class Repository(Protocol[T]):
    def get(self, key: str) -> Optional[T]: ...

    def put(self, key: str, value: T) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list(self) -> List[T]: ...


RepositoryFactory = Callable[[str, Type[BaseModel]], Repository]


class InMemoryRepository(Generic[T]):
    """Dict-backed repository. Values are copied in and out."""

    def __init__(self, namespace: str, model: Type[T]) -> None:
        self.namespace = namespace
        self.model = model
        self._lock = threading.Lock()
        self._records: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            record = self._records.get(key)
            return record.model_copy(deep=True) if record is not None else None

    def put(self, key: str, value: T) -> None:
        with self._lock:
            self._records[key] = value.model_copy(deep=True)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def list(self) -> List[T]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]


def in_memory_factory() -> RepositoryFactory:
    """Factory that hands out one fresh InMemoryRepository per namespace."""

    def _factory(namespace: str, model: Type[BaseModel]) -> Repository:
        return InMemoryRepository(namespace, model)

    return _factory
