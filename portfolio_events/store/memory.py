"""In-memory repository and cache implementations."""

import copy
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass
class InMemoryRepository(Generic[T]):
    """Thread-safe in-memory document collection.

    Entities are deep-copied on the way in and out, so two readers never
    share one object and a caller only changes stored state by calling
    ``save``.
    """

    id_attr: str
    _entities: dict[str, T] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def save(self, entity: T) -> T:
        """Insert or replace an entity."""
        entity_id = getattr(entity, self.id_attr)
        stored = copy.deepcopy(entity)
        with self._lock:
            self._entities[entity_id] = stored
        return copy.deepcopy(stored)

    def find_by_id(self, entity_id: str) -> T | None:
        """Get an entity by id."""
        with self._lock:
            entity = self._entities.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    def find_all(self) -> list[T]:
        """Get all entities."""
        with self._lock:
            entities = list(self._entities.values())
        return [copy.deepcopy(e) for e in entities]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)


@dataclass
class InMemoryCache:
    """Key/value cache with per-entry TTL."""

    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, tuple[float, Any]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self, key: str) -> Any | None:
        """Cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self.clock():
                del self._entries[key]
                return None
        return copy.deepcopy(value)

    def put(self, key: str, value: Any, ttl: float) -> None:
        """Store a copy of ``value`` for ``ttl`` seconds."""
        with self._lock:
            self._entries[key] = (self.clock() + ttl, copy.deepcopy(value))

    def evict(self, key: str) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
