"""Configuration management for portfolio-events."""

import os
from dataclasses import dataclass, field
from typing import Any

from portfolio_events.exceptions import ConfigurationError

BROKER_BACKENDS = ("memory", "kafka")


@dataclass
class KafkaConfig:
    """Kafka producer/consumer configuration."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3
    delivery_timeout_seconds: float = 10.0
    auto_offset_reset: str = "earliest"
    session_timeout_ms: int = 45000

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka producer config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
            "enable.idempotence": self.acks == "all",
        }

    def to_consumer_dict(self, group_id: str) -> dict[str, Any]:
        """Convert to confluent-kafka consumer config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "group.id": group_id,
            "enable.auto.commit": False,
            "auto.offset.reset": self.auto_offset_reset,
            "session.timeout.ms": self.session_timeout_ms,
        }


@dataclass
class TopicConfig:
    """Logical topic and consumer group names."""

    transaction_events: str = "transaction-events"
    portfolio_events: str = "portfolio-events"
    dead_letter_suffix: str = ".dlq"
    projection_group: str = "portfolio-projection"
    notification_group: str = "notification-service"
    partitions: int = 3

    def dead_letter_topic(self, topic: str) -> str:
        """Dead-letter topic for a source topic."""
        return f"{topic}{self.dead_letter_suffix}"


@dataclass
class RetryConfig:
    """Bounded exponential backoff used by the publisher and consumers."""

    max_retries: int = 5
    initial_delay_seconds: float = 0.2
    max_delay_seconds: float = 10.0
    backoff_multiplier: float = 2.0

    def delays(self) -> list[float]:
        """Sleep durations between successive attempts."""
        delays = []
        delay = self.initial_delay_seconds
        for _ in range(self.max_retries):
            delays.append(delay)
            delay = min(delay * self.backoff_multiplier, self.max_delay_seconds)
        return delays


@dataclass
class SettlementConfig:
    """Settlement step configuration."""

    latency_seconds: float = 0.1  # simulated processing time
    failure_rate: float = 0.0
    timeout_seconds: float = 5.0  # hard upper bound, exceeding it fails the transaction
    workers: int = 4


@dataclass
class CacheConfig:
    """Portfolio view cache configuration."""

    ttl_seconds: float = 600.0
    key_prefix: str = "portfolios"


@dataclass
class LedgerConfig:
    """Idempotency ledger configuration.

    Retention must be at least as long as the broker's redelivery window;
    the default matches Kafka's default log retention of seven days.
    """

    retention_seconds: float = 7 * 24 * 3600.0
    max_entries_per_consumer: int | None = None


@dataclass
class AppConfig:
    """Main configuration for portfolio-events."""

    broker_backend: str = "memory"
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    topics: TopicConfig = field(default_factory=TopicConfig)
    publisher_retry: RetryConfig = field(default_factory=RetryConfig)
    consumer_retry: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=3))
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    consumer_workers: int = 3
    log_level: str = "INFO"
    log_format: str = "standard"

    def __post_init__(self) -> None:
        if self.broker_backend not in BROKER_BACKENDS:
            raise ConfigurationError(
                f"Unknown broker backend {self.broker_backend!r}, expected one of {BROKER_BACKENDS}"
            )
        if self.settlement.timeout_seconds <= 0:
            raise ConfigurationError("Settlement timeout must be positive")
        if self.consumer_workers < 1:
            raise ConfigurationError("At least one consumer worker is required")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from environment variables."""
        try:
            kafka = KafkaConfig(
                bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
                acks=os.getenv("KAFKA_ACKS", "all"),
            )

            topics = TopicConfig(
                transaction_events=os.getenv("TRANSACTION_EVENTS_TOPIC", "transaction-events"),
                portfolio_events=os.getenv("PORTFOLIO_EVENTS_TOPIC", "portfolio-events"),
                partitions=int(os.getenv("TOPIC_PARTITIONS", "3")),
            )

            settlement = SettlementConfig(
                latency_seconds=float(os.getenv("SETTLEMENT_LATENCY", "0.1")),
                failure_rate=float(os.getenv("SETTLEMENT_FAILURE_RATE", "0")),
                timeout_seconds=float(os.getenv("SETTLEMENT_TIMEOUT", "5")),
            )

            cache = CacheConfig(ttl_seconds=float(os.getenv("CACHE_TTL", "600")))

            ledger = LedgerConfig(
                retention_seconds=float(os.getenv("LEDGER_RETENTION", str(7 * 24 * 3600))),
            )

            consumer_workers = int(os.getenv("CONSUMER_WORKERS", "3"))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            broker_backend=os.getenv("BROKER_BACKEND", "memory"),
            kafka=kafka,
            topics=topics,
            settlement=settlement,
            cache=cache,
            ledger=ledger,
            consumer_workers=consumer_workers,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
