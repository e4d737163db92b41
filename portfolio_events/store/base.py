"""Persistence, cache and idempotency interfaces consumed by the services."""

from typing import Any, Protocol, TypeVar

T = TypeVar("T")


class Repository(Protocol[T]):
    """Point operations on a document collection."""

    def save(self, entity: T) -> T:
        """Insert or replace ``entity`` and return the stored version."""
        ...

    def find_by_id(self, entity_id: str) -> T | None:
        """Entity with ``entity_id`` or None."""
        ...

    def find_all(self) -> list[T]:
        """Every stored entity, in insertion order."""
        ...


class Cache(Protocol):
    """Key/value cache with per-entry expiry."""

    def get(self, key: str) -> Any | None:
        """Cached value or None on a miss."""
        ...

    def put(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds."""
        ...

    def evict(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...


class IdempotencyLedger(Protocol):
    """Record of event ids each consumer has already applied."""

    def seen(self, consumer: str, event_id: str) -> bool:
        """Whether ``consumer`` already applied ``event_id``."""
        ...

    def mark_seen(self, consumer: str, event_id: str) -> None:
        """Record that ``consumer`` applied ``event_id``."""
        ...
