"""Persistence, cache and idempotency stores."""

from portfolio_events.store.base import Cache, IdempotencyLedger, Repository
from portfolio_events.store.ledger import InMemoryIdempotencyLedger
from portfolio_events.store.memory import InMemoryCache, InMemoryRepository

__all__ = [
    "Cache",
    "IdempotencyLedger",
    "InMemoryCache",
    "InMemoryIdempotencyLedger",
    "InMemoryRepository",
    "Repository",
]
