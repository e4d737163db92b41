"""Notification consumer: one message per event, no state changes."""

import logging
from typing import Protocol

from portfolio_events.broker.base import Broker
from portfolio_events.config import RetryConfig, TopicConfig
from portfolio_events.consumers.runner import ConsumerRunner
from portfolio_events.models import (
    EventEnvelope,
    PortfolioEventType,
    TransactionEvent,
    TransactionEventType,
)
from portfolio_events.store.base import IdempotencyLedger

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Delivery channel such as e-mail, SMS or push."""

    def send(self, recipient: str, message: str) -> None:
        ...


class LoggingNotificationChannel:
    """Channel that writes notifications to the log."""

    def __init__(self) -> None:
        self.sent = 0

    def send(self, recipient: str, message: str) -> None:
        logger.info("Notification to %s: %s", recipient, message)
        self.sent += 1


TRANSACTION_MESSAGES = {
    TransactionEventType.TRANSACTION_CREATED: (
        "Transaction {transaction_id} created: {transaction_type} {quantity} shares "
        "of {symbol} at ${price}"
    ),
    TransactionEventType.TRANSACTION_PROCESSING: "Transaction {transaction_id} is being processed",
    TransactionEventType.TRANSACTION_COMPLETED: (
        "Transaction {transaction_id} completed successfully. Total: ${total_amount}"
    ),
    TransactionEventType.TRANSACTION_FAILED: (
        "Transaction {transaction_id} failed. Please contact support."
    ),
    TransactionEventType.TRANSACTION_CANCELLED: "Transaction {transaction_id} has been cancelled",
}

PORTFOLIO_MESSAGES = {
    PortfolioEventType.PORTFOLIO_CREATED: (
        "Portfolio {portfolio_id} created successfully for client {client_id}"
    ),
    PortfolioEventType.PORTFOLIO_UPDATED: (
        "Portfolio {portfolio_id} updated. Total value: ${total_value}"
    ),
    PortfolioEventType.HOLDING_ADDED: (
        "New holding added to portfolio {portfolio_id}. Total value: ${total_value}"
    ),
    PortfolioEventType.HOLDING_UPDATED: (
        "Holding updated in portfolio {portfolio_id}. Total value: ${total_value}"
    ),
    PortfolioEventType.HOLDING_REMOVED: (
        "Holding removed from portfolio {portfolio_id}. Total value: ${total_value}"
    ),
}


def render(event: EventEnvelope) -> tuple[str, str]:
    """Recipient and message text for ``event``.

    Transaction events go to the account number, portfolio events to
    the client id.
    """
    if isinstance(event, TransactionEvent):
        message = TRANSACTION_MESSAGES[event.event_type].format(
            transaction_id=event.transaction_id,
            transaction_type=event.transaction_type.value,
            quantity=event.quantity,
            symbol=event.symbol,
            price=event.price,
            total_amount=event.total_amount,
        )
        return event.account_number, message

    message = PORTFOLIO_MESSAGES[event.event_type].format(
        portfolio_id=event.portfolio_id,
        client_id=event.client_id,
        total_value=event.total_value,
    )
    return event.client_id, message


class NotificationConsumer:
    """Turn transaction and portfolio events into user notifications.

    Redelivered events are recognised through the ledger, so each event
    yields at most one successful notification.
    """

    def __init__(
        self,
        ledger: IdempotencyLedger,
        channel: NotificationChannel | None = None,
        name: str = TopicConfig.notification_group,
    ) -> None:
        self.ledger = ledger
        self.channel = channel or LoggingNotificationChannel()
        self.name = name

    def handle(self, event: EventEnvelope) -> bool:
        """Notify about ``event``; returns False for a duplicate."""
        if self.ledger.seen(self.name, event.event_id):
            logger.info("Skipping duplicate notification for event %s", event.event_id)
            return False

        recipient, message = render(event)
        self.channel.send(recipient, message)
        self.ledger.mark_seen(self.name, event.event_id)
        logger.debug("Processed %s event %s", event.event_type.value, event.event_id)
        return True

    def runners(
        self,
        broker: Broker,
        topics: TopicConfig | None = None,
        retry: RetryConfig | None = None,
        workers: int = 1,
    ) -> list[ConsumerRunner]:
        """One consumer runner per subscribed topic."""
        topics = topics or TopicConfig()
        return [
            ConsumerRunner(
                broker,
                topic,
                topics.notification_group,
                self.handle,
                retry=retry,
                workers=workers,
                topics=topics,
            )
            for topic in (topics.transaction_events, topics.portfolio_events)
        ]
