"""Event envelopes announcing transaction and portfolio state changes.

An envelope is created once, at the moment of a transition, and never
changes afterwards; the broker may deliver it more than once. The JSON
wire form uses camelCase keys::

    {"eventId": "...", "eventType": "TRANSACTION_COMPLETED",
     "transactionId": "...", "portfolioId": "...", "accountNumber": "...",
     "transactionType": "BUY", "symbol": "AAPL", "quantity": "100",
     "price": "150", "totalAmount": "15009.99", "status": "COMPLETED",
     "timestamp": "2024-01-15T10:30:00+00:00"}
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Union

from portfolio_events.exceptions import EventDecodeError
from portfolio_events.models.base import new_id, to_decimal, utcnow
from portfolio_events.models.enums import (
    PortfolioEventType,
    TransactionEventType,
    TransactionStatus,
    TransactionType,
)
from portfolio_events.models.portfolio import Portfolio
from portfolio_events.models.transaction import Transaction
from portfolio_events.serialization import decode_json, encode_json, serialize_value


def _require(data: dict, key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise EventDecodeError(f"Missing field {key!r} in event payload") from None


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise EventDecodeError(f"Invalid timestamp {value!r}") from e


def _parse_decimal(value: Any, key: str) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError as e:
        raise EventDecodeError(f"Invalid decimal for {key!r}: {value!r}") from e


@dataclass(frozen=True)
class TransactionEvent:
    """Snapshot of a transaction at one state transition."""

    event_type: TransactionEventType
    transaction_id: str
    portfolio_id: str
    account_number: str
    transaction_type: TransactionType
    symbol: str
    quantity: Decimal
    price: Decimal
    total_amount: Decimal
    status: TransactionStatus
    timestamp: datetime = field(default_factory=utcnow)
    event_id: str = field(default_factory=new_id)

    @property
    def partition_key(self) -> str:
        return self.transaction_id

    @classmethod
    def from_transaction(
        cls, event_type: TransactionEventType, transaction: Transaction
    ) -> "TransactionEvent":
        """Build the envelope for ``transaction`` as it is right now."""
        return cls(
            event_type=event_type,
            transaction_id=transaction.transaction_id,
            portfolio_id=transaction.portfolio_id,
            account_number=transaction.account_number,
            transaction_type=transaction.transaction_type,
            symbol=transaction.symbol,
            quantity=transaction.quantity,
            price=transaction.price,
            total_amount=transaction.total_amount,
            status=transaction.status,
        )

    def to_wire(self) -> dict[str, Any]:
        """Wire dict with camelCase keys and string decimals."""
        return {
            "eventId": self.event_id,
            "eventType": serialize_value(self.event_type),
            "transactionId": self.transaction_id,
            "portfolioId": self.portfolio_id,
            "accountNumber": self.account_number,
            "transactionType": serialize_value(self.transaction_type),
            "symbol": self.symbol,
            "quantity": serialize_value(self.quantity),
            "price": serialize_value(self.price),
            "totalAmount": serialize_value(self.total_amount),
            "status": serialize_value(self.status),
            "timestamp": serialize_value(self.timestamp),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "TransactionEvent":
        """Parse a wire dict; raises ``EventDecodeError`` on schema mismatch."""
        try:
            event_type = TransactionEventType(_require(data, "eventType"))
            transaction_type = TransactionType(_require(data, "transactionType"))
            status = TransactionStatus(_require(data, "status"))
        except ValueError as e:
            raise EventDecodeError(str(e)) from e

        return cls(
            event_id=_require(data, "eventId"),
            event_type=event_type,
            transaction_id=_require(data, "transactionId"),
            portfolio_id=_require(data, "portfolioId"),
            account_number=_require(data, "accountNumber"),
            transaction_type=transaction_type,
            symbol=_require(data, "symbol"),
            quantity=_parse_decimal(_require(data, "quantity"), "quantity"),
            price=_parse_decimal(_require(data, "price"), "price"),
            total_amount=_parse_decimal(_require(data, "totalAmount"), "totalAmount"),
            status=status,
            timestamp=_parse_timestamp(_require(data, "timestamp")),
        )

    def encode(self) -> bytes:
        return encode_json(self.to_wire())


@dataclass(frozen=True)
class PortfolioEvent:
    """Snapshot of a portfolio after a direct mutation."""

    event_type: PortfolioEventType
    portfolio_id: str
    client_id: str
    account_number: str
    total_value: Decimal
    timestamp: datetime = field(default_factory=utcnow)
    event_id: str = field(default_factory=new_id)

    @property
    def partition_key(self) -> str:
        return self.portfolio_id

    @classmethod
    def from_portfolio(
        cls, event_type: PortfolioEventType, portfolio: Portfolio
    ) -> "PortfolioEvent":
        """Build the envelope for ``portfolio`` as it is right now."""
        return cls(
            event_type=event_type,
            portfolio_id=portfolio.portfolio_id,
            client_id=portfolio.client_id,
            account_number=portfolio.account_number,
            total_value=portfolio.total_value,
        )

    def to_wire(self) -> dict[str, Any]:
        """Wire dict with camelCase keys and string decimals."""
        return {
            "eventId": self.event_id,
            "eventType": serialize_value(self.event_type),
            "portfolioId": self.portfolio_id,
            "clientId": self.client_id,
            "accountNumber": self.account_number,
            "totalValue": serialize_value(self.total_value),
            "timestamp": serialize_value(self.timestamp),
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "PortfolioEvent":
        """Parse a wire dict; raises ``EventDecodeError`` on schema mismatch."""
        try:
            event_type = PortfolioEventType(_require(data, "eventType"))
        except ValueError as e:
            raise EventDecodeError(str(e)) from e

        return cls(
            event_id=_require(data, "eventId"),
            event_type=event_type,
            portfolio_id=_require(data, "portfolioId"),
            client_id=_require(data, "clientId"),
            account_number=_require(data, "accountNumber"),
            total_value=_parse_decimal(_require(data, "totalValue"), "totalValue"),
            timestamp=_parse_timestamp(_require(data, "timestamp")),
        )

    def encode(self) -> bytes:
        return encode_json(self.to_wire())


EventEnvelope = Union[TransactionEvent, PortfolioEvent]

_TRANSACTION_EVENT_TYPES = {t.value for t in TransactionEventType}
_PORTFOLIO_EVENT_TYPES = {t.value for t in PortfolioEventType}


def decode_envelope(payload: bytes | str) -> EventEnvelope:
    """Decode a broker payload into the matching envelope type."""
    try:
        data = decode_json(payload)
    except ValueError as e:
        raise EventDecodeError(f"Payload is not a JSON object: {e}") from e

    event_type = data.get("eventType")
    if event_type in _TRANSACTION_EVENT_TYPES:
        return TransactionEvent.from_wire(data)
    if event_type in _PORTFOLIO_EVENT_TYPES:
        return PortfolioEvent.from_wire(data)
    raise EventDecodeError(f"Unknown eventType {event_type!r}")
