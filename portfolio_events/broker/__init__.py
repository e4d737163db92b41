"""Message brokers carrying event envelopes between components."""

from portfolio_events.broker.base import Broker, Delivery, Subscription, partition_for
from portfolio_events.broker.kafka import KafkaBroker
from portfolio_events.broker.memory import InMemoryBroker

__all__ = [
    "Broker",
    "Delivery",
    "InMemoryBroker",
    "KafkaBroker",
    "Subscription",
    "partition_for",
]
