"""Consumer runner: poll, decode, handle, commit."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from portfolio_events.broker.base import Broker, Delivery, Subscription
from portfolio_events.config import RetryConfig, TopicConfig
from portfolio_events.exceptions import BrokerUnavailable, EventDecodeError, NonRetryableError
from portfolio_events.logging import delivery_context, event_context
from portfolio_events.models import EventEnvelope, decode_envelope

logger = logging.getLogger(__name__)

Handler = Callable[[EventEnvelope], None]


@dataclass
class RunnerStats:
    """Track consumer processing statistics."""

    handled: int = 0
    retried: int = 0
    dead_lettered: int = 0


class ConsumerRunner:
    """Drive a handler from one topic within a consumer group.

    Each worker thread owns its own subscription, so the topic's
    partitions are spread over the workers and records of one partition
    are handled in order by a single thread. A record's offset is
    committed only after the handler has finished with it.

    Undecodable payloads and ``NonRetryableError`` failures are copied to
    the dead-letter topic and committed straight away. Any other handler
    error is retried with backoff, then dead-lettered. If the broker
    becomes unavailable the worker drops its subscription, backs off and
    resubscribes, resuming from the last committed offset.

    Parameters
    ----------
    broker : Broker
        Source broker; also receives dead-lettered records.
    topic : str
        Topic to consume.
    group : str
        Consumer group name.
    handler : Handler
        Called once per decoded envelope.
    retry : RetryConfig | None
        Backoff for handler retries and broker reconnects.
    workers : int
        Number of worker threads started by ``start``.
    topics : TopicConfig | None
        Supplies the dead-letter topic naming.
    poll_timeout : float
        Seconds a single poll waits for a record.
    """

    def __init__(
        self,
        broker: Broker,
        topic: str,
        group: str,
        handler: Handler,
        retry: RetryConfig | None = None,
        workers: int = 1,
        topics: TopicConfig | None = None,
        poll_timeout: float = 0.5,
    ) -> None:
        self.broker = broker
        self.topic = topic
        self.group = group
        self.handler = handler
        self.retry = retry or RetryConfig(max_retries=3)
        self.workers = workers
        self.dead_letter_topic = (topics or TopicConfig()).dead_letter_topic(topic)
        self.poll_timeout = poll_timeout
        self.stats = RunnerStats()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._stats_lock = threading.Lock()
        self._sync_subscription: Subscription | None = None

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Start the worker threads."""
        if self.running:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(
                target=self._work,
                name=f"{self.group}-{self.topic}-{i}",
                daemon=True,
            )
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "Consumer group %s started on %s with %d worker(s)",
            self.group,
            self.topic,
            self.workers,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the workers to stop and wait for them."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        if self._sync_subscription is not None:
            self._sync_subscription.close()
            self._sync_subscription = None
        logger.info(
            "Consumer group %s stopped on %s: handled=%d, retried=%d, dead_lettered=%d",
            self.group,
            self.topic,
            self.stats.handled,
            self.stats.retried,
            self.stats.dead_lettered,
        )

    def poll_once(self, timeout: float | None = None) -> bool:
        """Poll and process a single record on the calling thread.

        Returns whether a record was processed.
        """
        if self._sync_subscription is None:
            self._sync_subscription = self.broker.subscribe(self.topic, self.group)
        delivery = self._sync_subscription.poll(
            self.poll_timeout if timeout is None else timeout
        )
        if delivery is None:
            return False
        self._process(self._sync_subscription, delivery)
        return True

    def _backoff(self, failures: int) -> float:
        delays = self.retry.delays()
        if not delays:
            return self.retry.initial_delay_seconds
        return delays[min(failures, len(delays) - 1)]

    def _work(self) -> None:
        subscription: Subscription | None = None
        failures = 0
        while not self._stop.is_set():
            try:
                if subscription is None:
                    subscription = self.broker.subscribe(self.topic, self.group)
                delivery = subscription.poll(self.poll_timeout)
                if delivery is not None:
                    self._process(subscription, delivery)
                failures = 0
            except BrokerUnavailable as e:
                delay = self._backoff(failures)
                failures += 1
                logger.warning(
                    "Broker unavailable for %s/%s: %s. Resubscribing in %.2fs",
                    self.group,
                    self.topic,
                    e,
                    delay,
                )
                if subscription is not None:
                    subscription.close()
                    subscription = None
                self._stop.wait(delay)

        if subscription is not None:
            subscription.close()

    def _process(self, subscription: Subscription, delivery: Delivery) -> None:
        try:
            envelope = decode_envelope(delivery.value)
        except EventDecodeError as e:
            logger.error(
                "Undecodable record %s[%d]@%d: %s",
                delivery.topic,
                delivery.partition,
                delivery.offset,
                e,
                extra=delivery_context(delivery, self.group),
            )
            self._dead_letter(delivery)
            subscription.commit(delivery)
            return

        logger.debug(
            "Received %s from %s[%d]@%d, key: %s",
            envelope.event_type.value,
            delivery.topic,
            delivery.partition,
            delivery.offset,
            delivery.key,
        )
        self._handle(envelope, delivery)
        subscription.commit(delivery)

    def _handle(self, envelope: EventEnvelope, delivery: Delivery) -> None:
        delays = self.retry.delays()
        attempts = len(delays) + 1

        for attempt in range(attempts):
            try:
                self.handler(envelope)
            except NonRetryableError as e:
                logger.error(
                    "Rejected %s %s in %s: %s",
                    envelope.event_type.value,
                    envelope.event_id,
                    self.group,
                    e,
                    extra=event_context(envelope),
                )
                self._dead_letter(delivery)
                return
            except Exception as e:
                if attempt < len(delays):
                    with self._stats_lock:
                        self.stats.retried += 1
                    logger.warning(
                        "Handling %s failed (attempt %d/%d): %s. Retrying in %.2fs",
                        envelope.event_id,
                        attempt + 1,
                        attempts,
                        e,
                        delays[attempt],
                    )
                    self._stop.wait(delays[attempt])
                    continue
                logger.exception(
                    "Handling %s failed after %d attempts", envelope.event_id, attempts,
                    extra=event_context(envelope),
                )
                self._dead_letter(delivery)
                return

            with self._stats_lock:
                self.stats.handled += 1
            return

    def _dead_letter(self, delivery: Delivery) -> None:
        """Copy ``delivery`` unchanged to the dead-letter topic."""
        self.broker.publish(self.dead_letter_topic, delivery.key or "", delivery.value)
        with self._stats_lock:
            self.stats.dead_lettered += 1
        logger.error(
            "Dead-lettered %s[%d]@%d to %s",
            delivery.topic,
            delivery.partition,
            delivery.offset,
            self.dead_letter_topic,
            extra=delivery_context(delivery, self.group),
        )
