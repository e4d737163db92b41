"""Event consumers and the runner that drives them."""

from portfolio_events.consumers.notification import (
    LoggingNotificationChannel,
    NotificationChannel,
    NotificationConsumer,
)
from portfolio_events.consumers.projection import PortfolioProjectionUpdater
from portfolio_events.consumers.runner import ConsumerRunner, RunnerStats

__all__ = [
    "ConsumerRunner",
    "LoggingNotificationChannel",
    "NotificationChannel",
    "NotificationConsumer",
    "PortfolioProjectionUpdater",
    "RunnerStats",
]
