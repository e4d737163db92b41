"""Event publisher turning state transitions into broker records."""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from portfolio_events.broker.base import Broker
from portfolio_events.config import RetryConfig, TopicConfig
from portfolio_events.exceptions import BrokerUnavailable, InvalidStateError
from portfolio_events.logging import event_context
from portfolio_events.models import (
    EventEnvelope,
    Portfolio,
    PortfolioEvent,
    PortfolioEventType,
    Transaction,
    TransactionEvent,
    TransactionEventType,
)

logger = logging.getLogger(__name__)


@dataclass
class PublisherStats:
    """Track publisher delivery statistics."""

    enqueued: int = 0
    delivered: int = 0
    failed: int = 0
    retried: int = 0
    held: int = 0


class EventPublisher:
    """Fire-and-forget publisher with ordered background delivery.

    ``publish_*`` calls only build the envelope and enqueue it, so the
    caller never waits on the broker. A single sender thread delivers the
    queue in FIFO order, keyed by the entity id, which keeps the events
    of one transaction in transition order on one partition.

    While the broker is unavailable the sender retries with bounded
    exponential backoff. An envelope that still cannot be delivered is
    logged with its full payload and kept in ``undelivered`` for
    ``replay_undelivered``; it is never dropped. Until that replay, later
    envelopes for the same topic and key are held in ``undelivered`` behind
    it, so a replay resends them in their original order.

    Parameters
    ----------
    broker : Broker
        Destination broker.
    topics : TopicConfig | None
        Topic names.
    retry : RetryConfig | None
        Backoff policy for ``BrokerUnavailable``.
    sleep : Callable[[float], None]
        Sleep function, injectable for tests.
    """

    def __init__(
        self,
        broker: Broker,
        topics: TopicConfig | None = None,
        retry: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.broker = broker
        self.topics = topics or TopicConfig()
        self.retry = retry or RetryConfig()
        self.stats = PublisherStats()
        self.undelivered: list[tuple[str, EventEnvelope]] = []
        self._parked: set[tuple[str, str]] = set()
        self._sleep = sleep
        self._queue: deque[tuple[str, EventEnvelope]] = deque()
        self._pending = 0
        self._closed = False
        self._cond = threading.Condition()
        self._thread = threading.Thread(target=self._run, name="event-publisher", daemon=True)
        self._thread.start()

    def publish_transaction_event(
        self, event_type: TransactionEventType, transaction: Transaction
    ) -> TransactionEvent:
        """Announce a transaction transition on the transaction topic."""
        event = TransactionEvent.from_transaction(event_type, transaction)
        self.publish(self.topics.transaction_events, event)
        return event

    def publish_portfolio_event(
        self, event_type: PortfolioEventType, portfolio: Portfolio
    ) -> PortfolioEvent:
        """Announce a portfolio change on the portfolio topic."""
        event = PortfolioEvent.from_portfolio(event_type, portfolio)
        self.publish(self.topics.portfolio_events, event)
        return event

    def publish(self, topic: str, envelope: EventEnvelope) -> None:
        """Enqueue ``envelope`` for delivery to ``topic``."""
        with self._cond:
            if self._closed:
                raise InvalidStateError("Publisher is closed")
            self._queue.append((topic, envelope))
            self._pending += 1
            self.stats.enqueued += 1
            self._cond.notify_all()
        logger.debug(
            "Queued %s for %s on %s",
            envelope.event_type.value,
            envelope.partition_key,
            topic,
        )

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._closed:
                    self._cond.wait()
                if not self._queue:
                    return
                topic, envelope = self._queue.popleft()
                if (topic, envelope.partition_key) in self._parked:
                    self.undelivered.append((topic, envelope))
                    self.stats.held += 1
                    self._pending -= 1
                    self._cond.notify_all()
                    held = True
                else:
                    held = False

            if held:
                logger.warning(
                    "Holding %s behind an undelivered event for %s",
                    envelope.event_id,
                    envelope.partition_key,
                    extra={**event_context(envelope), "topic": topic},
                )
                continue

            try:
                self._send(topic, envelope)
            except Exception:
                logger.exception(
                    "Unexpected error publishing %s to %s, event kept for replay: %s",
                    envelope.event_id,
                    topic,
                    envelope.encode().decode("utf-8"),
                )
                self._keep_undelivered(topic, envelope)
            finally:
                with self._cond:
                    self._pending -= 1
                    self._cond.notify_all()

    def _send(self, topic: str, envelope: EventEnvelope) -> None:
        payload = envelope.encode()
        delays = self.retry.delays()
        attempts = len(delays) + 1

        for attempt in range(attempts):
            try:
                self.broker.publish(topic, envelope.partition_key, payload)
            except BrokerUnavailable as e:
                if attempt < len(delays):
                    self.stats.retried += 1
                    logger.warning(
                        "Publish of %s to %s failed (attempt %d/%d): %s. Retrying in %.2fs",
                        envelope.event_id,
                        topic,
                        attempt + 1,
                        attempts,
                        e,
                        delays[attempt],
                    )
                    self._sleep(delays[attempt])
                    continue
                logger.error(
                    "Publish to %s failed after %d attempts, event kept for replay: %s",
                    topic,
                    attempts,
                    payload.decode("utf-8"),
                    extra={**event_context(envelope), "topic": topic},
                )
                self._keep_undelivered(topic, envelope)
                return

            self.stats.delivered += 1
            logger.debug("Published %s for %s", envelope.event_type.value, envelope.partition_key)
            return

    def _keep_undelivered(self, topic: str, envelope: EventEnvelope) -> None:
        with self._cond:
            self.stats.failed += 1
            self.undelivered.append((topic, envelope))
            self._parked.add((topic, envelope.partition_key))

    def replay_undelivered(self) -> int:
        """Re-enqueue every undelivered envelope; returns how many.

        Replayed envelopes go to the front of the queue in their original
        order, ahead of anything queued since, so each key stays in order.
        """
        with self._cond:
            if self._closed:
                raise InvalidStateError("Publisher is closed")
            items, self.undelivered = self.undelivered, []
            self._parked.clear()
            self._queue.extendleft(reversed(items))
            self._pending += len(items)
            self.stats.enqueued += len(items)
            self._cond.notify_all()
        if items:
            logger.info("Replaying %d undelivered event(s)", len(items))
        return len(items)

    def flush(self, timeout: float = 10.0) -> bool:
        """Wait until the queue is drained; False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout)

    def close(self, timeout: float = 10.0) -> None:
        """Drain the queue and stop the sender thread."""
        drained = self.flush(timeout)
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        self._thread.join(timeout)
        if not drained:
            logger.error("Publisher closed with %d event(s) still queued", self._pending)
        logger.info(
            "Publisher closed: enqueued=%d, delivered=%d, failed=%d, retried=%d, held=%d",
            self.stats.enqueued,
            self.stats.delivered,
            self.stats.failed,
            self.stats.retried,
            self.stats.held,
        )
