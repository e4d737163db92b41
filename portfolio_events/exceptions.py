"""Custom exception hierarchy for portfolio-events."""

from __future__ import annotations

from typing import Any


class PortfolioEventsError(Exception):
    """Base exception for all portfolio-events errors."""


class ValidationError(PortfolioEventsError):
    """Raised when a request is rejected before any state change."""


class ConflictError(PortfolioEventsError):
    """Raised when an entity with the same identity already exists."""


class InvalidStateError(PortfolioEventsError):
    """Raised when an entity is in an invalid state for the operation."""


class NonRetryableError(PortfolioEventsError):
    """Marker base for consumer errors that must not be redelivered."""


class NotFoundError(NonRetryableError):
    """Raised when a referenced transaction, portfolio or holding does not exist."""


class InsufficientHoldingError(NonRetryableError):
    """Raised when a SELL cannot be applied to the current holding."""

    def __init__(self, symbol: str, requested: Any, available: Any) -> None:
        super().__init__(
            f"Cannot sell {requested} {symbol}: only {available} held"
        )
        self.symbol = symbol
        self.requested = requested
        self.available = available


class SettlementFailure(PortfolioEventsError):
    """Raised when the settlement step fails or exceeds its time bound.

    When raised by the state machine, ``transaction`` holds the record
    that was moved to FAILED.
    """

    def __init__(self, message: str, transaction: Any = None) -> None:
        super().__init__(message)
        self.transaction = transaction


class BrokerUnavailable(PortfolioEventsError):
    """Raised when the message broker cannot be reached."""


class EventDecodeError(NonRetryableError):
    """Raised when a payload does not match the event wire schema."""


class ConfigurationError(PortfolioEventsError):
    """Raised when configuration is invalid or missing."""
