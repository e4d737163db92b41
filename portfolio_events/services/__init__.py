"""Domain services: settlement, event publishing, transactions and portfolios."""

from portfolio_events.services.portfolios import PortfolioService, portfolio_cache_key
from portfolio_events.services.publisher import EventPublisher, PublisherStats
from portfolio_events.services.settlement import Settlement, SimulatedSettlement
from portfolio_events.services.transactions import TransactionStateMachine

__all__ = [
    "EventPublisher",
    "PortfolioService",
    "PublisherStats",
    "Settlement",
    "SimulatedSettlement",
    "TransactionStateMachine",
    "portfolio_cache_key",
]
