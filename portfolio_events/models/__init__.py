"""Domain models for transactions, portfolios and their events."""

from portfolio_events.models.enums import (
    ALLOWED_TRANSITIONS,
    STATUS_EVENTS,
    TERMINAL_STATUSES,
    PortfolioEventType,
    PortfolioStatus,
    TransactionEventType,
    TransactionStatus,
    TransactionType,
)
from portfolio_events.models.events import (
    EventEnvelope,
    PortfolioEvent,
    TransactionEvent,
    decode_envelope,
)
from portfolio_events.models.portfolio import Holding, Portfolio
from portfolio_events.models.requests import (
    HoldingRequest,
    HoldingUpdate,
    PortfolioRequest,
    PortfolioUpdate,
    TransactionRequest,
)
from portfolio_events.models.transaction import Transaction, validate_amounts

__all__ = [
    "ALLOWED_TRANSITIONS",
    "EventEnvelope",
    "Holding",
    "HoldingRequest",
    "HoldingUpdate",
    "Portfolio",
    "PortfolioEvent",
    "PortfolioEventType",
    "PortfolioRequest",
    "PortfolioStatus",
    "PortfolioUpdate",
    "STATUS_EVENTS",
    "TERMINAL_STATUSES",
    "Transaction",
    "TransactionEvent",
    "TransactionEventType",
    "TransactionRequest",
    "TransactionStatus",
    "TransactionType",
    "decode_envelope",
    "validate_amounts",
]
