"""Wiring of the transaction, portfolio and notification components."""

import logging
from dataclasses import dataclass, field

from portfolio_events.broker import InMemoryBroker, KafkaBroker
from portfolio_events.broker.base import Broker
from portfolio_events.config import AppConfig
from portfolio_events.consumers import (
    ConsumerRunner,
    NotificationChannel,
    NotificationConsumer,
    PortfolioProjectionUpdater,
)
from portfolio_events.locks import KeyedLocks
from portfolio_events.models import Portfolio, Transaction
from portfolio_events.services import (
    EventPublisher,
    PortfolioService,
    Settlement,
    SimulatedSettlement,
    TransactionStateMachine,
)
from portfolio_events.store import (
    InMemoryCache,
    InMemoryIdempotencyLedger,
    InMemoryRepository,
)

logger = logging.getLogger(__name__)


def create_broker(config: AppConfig) -> Broker:
    """Broker selected by ``config.broker_backend``."""
    if config.broker_backend == "kafka":
        broker = KafkaBroker(config.kafka)
        broker.ensure_topics(
            [config.topics.transaction_events, config.topics.portfolio_events],
            partitions=config.topics.partitions,
        )
        return broker
    return InMemoryBroker(partitions=config.topics.partitions)


@dataclass
class PortfolioEventsApp:
    """All components of one deployment, sharing stores and locks.

    Build with ``PortfolioEventsApp.build``; ``start`` launches the
    consumer runners and ``stop`` shuts everything down in order.
    """

    config: AppConfig
    broker: Broker
    publisher: EventPublisher
    transactions: TransactionStateMachine
    portfolios: PortfolioService
    projection: PortfolioProjectionUpdater
    notifications: NotificationConsumer
    runners: list[ConsumerRunner] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        config: AppConfig | None = None,
        broker: Broker | None = None,
        settlement: Settlement | None = None,
        channel: NotificationChannel | None = None,
    ) -> "PortfolioEventsApp":
        """Create and connect every component.

        Parameters
        ----------
        config : AppConfig | None
            Application configuration (defaults if not given).
        broker : Broker | None
            Overrides the broker chosen by ``config.broker_backend``.
        settlement : Settlement | None
            Overrides the simulated settlement.
        channel : NotificationChannel | None
            Overrides the logging notification channel.

        Returns
        -------
        PortfolioEventsApp
            Wired, not yet started application.
        """
        config = config or AppConfig()
        broker = broker or create_broker(config)
        settlement = settlement or SimulatedSettlement.from_config(config.settlement)

        portfolio_repository: InMemoryRepository[Portfolio] = InMemoryRepository("portfolio_id")
        transaction_repository: InMemoryRepository[Transaction] = InMemoryRepository(
            "transaction_id"
        )
        cache = InMemoryCache()
        ledger = InMemoryIdempotencyLedger.from_config(config.ledger)
        portfolio_locks = KeyedLocks()

        publisher = EventPublisher(broker, topics=config.topics, retry=config.publisher_retry)
        transactions = TransactionStateMachine(
            transaction_repository, publisher, settlement, config=config.settlement
        )
        portfolios = PortfolioService(
            portfolio_repository,
            cache,
            publisher,
            locks=portfolio_locks,
            cache_config=config.cache,
        )
        projection = PortfolioProjectionUpdater(
            portfolio_repository,
            cache,
            ledger,
            locks=portfolio_locks,
            cache_config=config.cache,
            name=config.topics.projection_group,
        )
        notifications = NotificationConsumer(
            ledger, channel=channel, name=config.topics.notification_group
        )

        runners = [
            projection.runner(
                broker,
                topics=config.topics,
                retry=config.consumer_retry,
                workers=config.consumer_workers,
            ),
            *notifications.runners(broker, topics=config.topics, retry=config.consumer_retry),
        ]

        logger.info(
            "Application built with %s, %d projection worker(s)",
            type(broker).__name__,
            config.consumer_workers,
        )
        return cls(
            config=config,
            broker=broker,
            publisher=publisher,
            transactions=transactions,
            portfolios=portfolios,
            projection=projection,
            notifications=notifications,
            runners=runners,
        )

    def start(self) -> None:
        """Start every consumer runner."""
        for runner in self.runners:
            runner.start()

    def stop(self, timeout: float = 10.0) -> None:
        """Drain the publisher, stop the consumers and the settlement pool."""
        self.publisher.close(timeout)
        for runner in self.runners:
            runner.stop(timeout)
        self.transactions.close()
        if isinstance(self.broker, KafkaBroker):
            self.broker.close()
        logger.info("Application stopped")
