"""Publish/subscribe interface shared by the broker implementations."""

import zlib
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Delivery:
    """One record as handed to a consumer."""

    topic: str
    partition: int
    offset: int
    key: str | None
    value: bytes


def partition_for(key: str, partitions: int) -> int:
    """Deterministic partition for ``key``.

    Every record with the same key lands on the same partition, which is
    what gives per-entity ordering.
    """
    return zlib.crc32(key.encode("utf-8")) % partitions


class Subscription(Protocol):
    """A consumer group member's view of one topic."""

    def poll(self, timeout: float) -> Delivery | None:
        """Next record, or None if nothing arrived within ``timeout``."""
        ...

    def commit(self, delivery: Delivery) -> None:
        """Acknowledge ``delivery`` and everything before it in its partition."""
        ...

    def close(self) -> None:
        """Leave the consumer group; uncommitted records are redelivered."""
        ...


class Broker(Protocol):
    """At-least-once, key-partitioned message broker."""

    def publish(self, topic: str, partition_key: str, value: bytes) -> None:
        """Append ``value`` to ``topic``; raises ``BrokerUnavailable`` on failure."""
        ...

    def subscribe(self, topic: str, consumer_group: str) -> Subscription:
        """Join ``consumer_group`` on ``topic``."""
        ...
