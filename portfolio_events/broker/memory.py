"""In-process broker with Kafka-like partitions, groups and offsets."""

import logging
import threading
import time

from portfolio_events.broker.base import Delivery, partition_for
from portfolio_events.exceptions import BrokerUnavailable

logger = logging.getLogger(__name__)


class InMemorySubscription:
    """Consumer group member on one topic of an ``InMemoryBroker``."""

    def __init__(self, broker: "InMemoryBroker", topic: str, group: str) -> None:
        self.broker = broker
        self.topic = topic
        self.group = group
        self.closed = False
        self._positions: dict[int, int] = {}
        self._generation = -1
        self._cursor = 0

    @property
    def assignment(self) -> list[int]:
        """Partitions currently owned by this member."""
        return self.broker._assignment(self)

    def poll(self, timeout: float = 1.0) -> Delivery | None:
        return self.broker._fetch(self, timeout)

    def commit(self, delivery: Delivery) -> None:
        self.broker._commit(self, delivery)

    def close(self) -> None:
        self.broker._leave(self)


class InMemoryBroker:
    """Thread-safe broker keeping every topic as append-only partition logs.

    Records with the same key go to the same partition. Partitions of a
    topic are spread round-robin over the live members of a consumer
    group and reassigned when members join or leave. A member resumes
    from the group's committed offset, so anything fetched but not
    committed is delivered again (at-least-once).

    Parameters
    ----------
    partitions : int
        Number of partitions per topic.
    """

    def __init__(self, partitions: int = 3) -> None:
        self.partitions = partitions
        self._logs: dict[str, list[list[Delivery]]] = {}
        self._committed: dict[tuple[str, str, int], int] = {}
        self._members: dict[tuple[str, str], list[InMemorySubscription]] = {}
        self._generations: dict[tuple[str, str], int] = {}
        self._available = True
        self._cond = threading.Condition()

    def set_available(self, available: bool) -> None:
        """Simulate the broker going down or coming back."""
        with self._cond:
            self._available = available
            self._cond.notify_all()
        logger.info("Broker %s", "available" if available else "unavailable")

    def _partitions(self, topic: str) -> list[list[Delivery]]:
        logs = self._logs.get(topic)
        if logs is None:
            logs = [[] for _ in range(self.partitions)]
            self._logs[topic] = logs
        return logs

    def publish(self, topic: str, partition_key: str, value: bytes) -> None:
        """Append a record to the partition owning ``partition_key``."""
        with self._cond:
            if not self._available:
                raise BrokerUnavailable(f"Broker unavailable, cannot publish to {topic}")
            logs = self._partitions(topic)
            partition = partition_for(partition_key, self.partitions)
            delivery = Delivery(
                topic=topic,
                partition=partition,
                offset=len(logs[partition]),
                key=partition_key,
                value=value,
            )
            logs[partition].append(delivery)
            self._cond.notify_all()
        logger.debug("Appended to %s[%d]@%d", topic, partition, delivery.offset)

    def subscribe(self, topic: str, consumer_group: str) -> InMemorySubscription:
        """Join ``consumer_group`` on ``topic`` and trigger a rebalance."""
        subscription = InMemorySubscription(self, topic, consumer_group)
        with self._cond:
            self._partitions(topic)
            key = (topic, consumer_group)
            self._members.setdefault(key, []).append(subscription)
            self._generations[key] = self._generations.get(key, 0) + 1
            self._cond.notify_all()
        return subscription

    def _leave(self, subscription: InMemorySubscription) -> None:
        with self._cond:
            if subscription.closed:
                return
            subscription.closed = True
            key = (subscription.topic, subscription.group)
            self._members[key].remove(subscription)
            self._generations[key] = self._generations.get(key, 0) + 1
            self._cond.notify_all()

    def _assignment(self, subscription: InMemorySubscription) -> list[int]:
        members = self._members.get((subscription.topic, subscription.group), [])
        if subscription not in members:
            return []
        index = members.index(subscription)
        return [p for p in range(self.partitions) if p % len(members) == index]

    def _fetch(self, subscription: InMemorySubscription, timeout: float) -> Delivery | None:
        deadline = time.monotonic() + timeout
        key = (subscription.topic, subscription.group)
        with self._cond:
            while True:
                if subscription.closed:
                    return None
                if not self._available:
                    raise BrokerUnavailable(f"Broker unavailable, cannot poll {subscription.topic}")

                generation = self._generations.get(key, 0)
                if subscription._generation != generation:
                    # Rebalanced: restart every owned partition from the committed offset.
                    subscription._positions.clear()
                    subscription._generation = generation

                assignment = self._assignment(subscription)
                logs = self._partitions(subscription.topic)
                for i in range(len(assignment)):
                    partition = assignment[(subscription._cursor + i) % len(assignment)]
                    position = subscription._positions.get(
                        partition,
                        self._committed.get((subscription.group, subscription.topic, partition), 0),
                    )
                    if position < len(logs[partition]):
                        subscription._positions[partition] = position + 1
                        subscription._cursor = (subscription._cursor + i + 1) % len(assignment)
                        return logs[partition][position]

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def _commit(self, subscription: InMemorySubscription, delivery: Delivery) -> None:
        with self._cond:
            if not self._available:
                raise BrokerUnavailable("Broker unavailable, cannot commit")
            key = (subscription.group, delivery.topic, delivery.partition)
            if self._committed.get(key, 0) < delivery.offset + 1:
                self._committed[key] = delivery.offset + 1
            self._cond.notify_all()

    def committed_offset(self, topic: str, group: str, partition: int) -> int:
        with self._cond:
            return self._committed.get((group, topic, partition), 0)

    def lag(self, topic: str, group: str) -> int:
        """Records on ``topic`` not yet committed by ``group``."""
        with self._cond:
            logs = self._partitions(topic)
            return sum(
                len(log) - self._committed.get((group, topic, partition), 0)
                for partition, log in enumerate(logs)
            )

    def records(self, topic: str) -> list[Delivery]:
        """Every record of ``topic``, partition by partition."""
        with self._cond:
            return [d for log in self._partitions(topic) for d in log]

    def wait_for(self, predicate, timeout: float = 5.0) -> bool:
        """Block until ``predicate()`` is true or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True
