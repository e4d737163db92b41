"""Kafka broker backed by confluent-kafka."""

import logging
from dataclasses import dataclass
from typing import Any

from confluent_kafka import Consumer, KafkaError, KafkaException, Producer, TopicPartition

from portfolio_events.broker.base import Delivery
from portfolio_events.config import KafkaConfig
from portfolio_events.exceptions import BrokerUnavailable

logger = logging.getLogger(__name__)


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSubscription:
    """One consumer group member reading a single topic.

    Offsets are committed manually and synchronously, only after the
    handler has finished with a record.
    """

    def __init__(self, config: KafkaConfig, topic: str, group: str) -> None:
        self.topic = topic
        self.group = group
        self.consumer = Consumer(config.to_consumer_dict(group))
        self.consumer.subscribe([topic])

    def poll(self, timeout: float = 1.0) -> Delivery | None:
        """Poll one record; partition EOF and empty polls return None."""
        try:
            msg = self.consumer.poll(timeout)
        except KafkaException as e:
            raise BrokerUnavailable(f"Poll failed on {self.topic}: {e}") from e

        if msg is None:
            return None

        err = msg.error()
        if err:
            if err.code() == KafkaError._PARTITION_EOF:
                return None
            raise BrokerUnavailable(f"Consumer error on {self.topic}: {err}")

        key = msg.key()
        return Delivery(
            topic=msg.topic(),
            partition=msg.partition(),
            offset=msg.offset(),
            key=key.decode("utf-8") if key else None,
            value=msg.value(),
        )

    def commit(self, delivery: Delivery) -> None:
        """Commit the offset following ``delivery``."""
        try:
            self.consumer.commit(
                offsets=[TopicPartition(delivery.topic, delivery.partition, delivery.offset + 1)],
                asynchronous=False,
            )
        except KafkaException as e:
            raise BrokerUnavailable(f"Commit failed on {delivery.topic}: {e}") from e

    def close(self) -> None:
        self.consumer.close()


class KafkaBroker:
    """Publish keyed records to Kafka and hand out consumer subscriptions."""

    def __init__(self, config: KafkaConfig | str) -> None:
        """Initialize Kafka broker.

        Parameters
        ----------
        config : KafkaConfig | str
            Kafka configuration or bootstrap servers string.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.producer = Producer(config.to_dict())
        self.stats = ProducerStats()

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def publish(self, topic: str, partition_key: str, value: bytes) -> None:
        """Produce one record and wait for the broker to confirm it.

        Raises
        ------
        BrokerUnavailable
            If the record could not be queued or was not acknowledged
            within ``delivery_timeout_seconds``.
        """
        errors: list[Any] = []

        def on_delivery(err: Any, msg: Any) -> None:
            self._delivery_callback(err, msg)
            if err:
                errors.append(err)

        try:
            self.producer.produce(
                topic=topic,
                key=partition_key.encode("utf-8"),
                value=value,
                callback=on_delivery,
            )
        except (BufferError, KafkaException) as e:
            raise BrokerUnavailable(f"Cannot produce to {topic}: {e}") from e
        self.stats.sent += 1

        remaining = self.producer.flush(self.config.delivery_timeout_seconds)
        if remaining > 0:
            raise BrokerUnavailable(
                f"{remaining} record(s) to {topic} not acknowledged within "
                f"{self.config.delivery_timeout_seconds}s"
            )
        if errors:
            raise BrokerUnavailable(f"Delivery to {topic} failed: {errors[0]}")

    def subscribe(self, topic: str, consumer_group: str) -> KafkaSubscription:
        return KafkaSubscription(self.config, topic, consumer_group)

    def ensure_topics(
        self,
        topics: list[str],
        partitions: int = 3,
        replication_factor: int = 1,
    ) -> None:
        """Create any of ``topics`` that do not exist yet."""
        from confluent_kafka.admin import AdminClient, NewTopic

        admin = AdminClient({"bootstrap.servers": self.config.bootstrap_servers})
        existing = admin.list_topics(timeout=10).topics
        to_create = [
            NewTopic(topic, num_partitions=partitions, replication_factor=replication_factor)
            for topic in topics
            if topic not in existing
        ]

        if not to_create:
            logger.info("All topics already exist")
            return

        futures = admin.create_topics(to_create)
        for topic, future in futures.items():
            try:
                future.result()
                logger.info("Created topic: %s", topic)
            except KafkaException as e:
                logger.warning("Failed to create topic %s: %s", topic, e)

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending messages."""
        self.producer.flush(timeout)

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        logger.info(
            "Kafka broker closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )
