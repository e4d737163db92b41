"""Idempotency ledger collapsing duplicate event deliveries."""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable

from portfolio_events.config import LedgerConfig

logger = logging.getLogger(__name__)


class InMemoryIdempotencyLedger:
    """Per-consumer set of processed event ids with a retention window.

    Entries are keyed by ``(consumer, event_id)`` and expire after
    ``retention_seconds``, which must cover the broker's redelivery
    window. Every ``mark_seen`` also drops the consumer's expired ids, so
    the ledger holds at most one retention window of ids. With
    ``max_entries_per_consumer`` set, the oldest ids of a consumer are
    dropped beyond that bound as well.

    Parameters
    ----------
    retention_seconds : float
        How long a processed id is remembered.
    max_entries_per_consumer : int | None
        Optional size bound per consumer.
    clock : Callable[[], float]
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        retention_seconds: float = LedgerConfig.retention_seconds,
        max_entries_per_consumer: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retention_seconds = retention_seconds
        self.max_entries_per_consumer = max_entries_per_consumer
        self._clock = clock
        self._entries: dict[str, OrderedDict[str, float]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: LedgerConfig) -> "InMemoryIdempotencyLedger":
        return cls(
            retention_seconds=config.retention_seconds,
            max_entries_per_consumer=config.max_entries_per_consumer,
        )

    def seen(self, consumer: str, event_id: str) -> bool:
        """Whether ``consumer`` already processed ``event_id``."""
        with self._lock:
            entries = self._entries.get(consumer)
            if not entries:
                return False
            expires_at = entries.get(event_id)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del entries[event_id]
                return False
            return True

    def mark_seen(self, consumer: str, event_id: str) -> None:
        """Record that ``consumer`` processed ``event_id``."""
        now = self._clock()
        with self._lock:
            entries = self._entries.setdefault(consumer, OrderedDict())
            # insertion order is expiry order
            while entries:
                oldest, expires_at = next(iter(entries.items()))
                if expires_at > now:
                    break
                del entries[oldest]
            entries[event_id] = now + self.retention_seconds
            entries.move_to_end(event_id)
            if self.max_entries_per_consumer is not None:
                while len(entries) > self.max_entries_per_consumer:
                    entries.popitem(last=False)

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            for entries in self._entries.values():
                expired = [eid for eid, expires_at in entries.items() if expires_at <= now]
                for eid in expired:
                    del entries[eid]
                removed += len(expired)
        if removed:
            logger.debug("Purged %d expired ledger entries", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())
