"""Enumeration types for transactions, portfolios and their events."""

from enum import Enum


class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PortfolioStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class TransactionEventType(str, Enum):
    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_PROCESSING = "TRANSACTION_PROCESSING"
    TRANSACTION_COMPLETED = "TRANSACTION_COMPLETED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    TRANSACTION_CANCELLED = "TRANSACTION_CANCELLED"


class PortfolioEventType(str, Enum):
    PORTFOLIO_CREATED = "PORTFOLIO_CREATED"
    PORTFOLIO_UPDATED = "PORTFOLIO_UPDATED"
    HOLDING_ADDED = "HOLDING_ADDED"
    HOLDING_UPDATED = "HOLDING_UPDATED"
    HOLDING_REMOVED = "HOLDING_REMOVED"


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)

# Every status edge the state machine may take.
ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset(
        {TransactionStatus.PROCESSING, TransactionStatus.CANCELLED}
    ),
    TransactionStatus.PROCESSING: frozenset(
        {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
    ),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}

# Event announced when a transaction enters each status.
STATUS_EVENTS: dict[TransactionStatus, TransactionEventType] = {
    TransactionStatus.PENDING: TransactionEventType.TRANSACTION_CREATED,
    TransactionStatus.PROCESSING: TransactionEventType.TRANSACTION_PROCESSING,
    TransactionStatus.COMPLETED: TransactionEventType.TRANSACTION_COMPLETED,
    TransactionStatus.FAILED: TransactionEventType.TRANSACTION_FAILED,
    TransactionStatus.CANCELLED: TransactionEventType.TRANSACTION_CANCELLED,
}
