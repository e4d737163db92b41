"""Tests for event envelopes and their wire format."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from portfolio_events.exceptions import EventDecodeError
from portfolio_events.models import (
    Portfolio,
    PortfolioEvent,
    PortfolioEventType,
    Transaction,
    TransactionEvent,
    TransactionEventType,
    TransactionStatus,
    TransactionType,
    decode_envelope,
)


@pytest.fixture
def transaction() -> Transaction:
    return Transaction(
        transaction_id="tx-001",
        portfolio_id="pf-001",
        account_number="ACC-001",
        transaction_type=TransactionType.BUY,
        symbol="AAPL",
        quantity=Decimal("100"),
        price=Decimal("150.00"),
        commission=Decimal("9.99"),
        status=TransactionStatus.COMPLETED,
    )


class TestTransactionEvent:
    """Tests for TransactionEvent."""

    def test_from_transaction_snapshot(self, transaction: Transaction) -> None:
        """Test the envelope copies the transaction state."""
        event = TransactionEvent.from_transaction(
            TransactionEventType.TRANSACTION_COMPLETED, transaction
        )

        assert event.transaction_id == "tx-001"
        assert event.total_amount == Decimal("15009.99")
        assert event.status == TransactionStatus.COMPLETED
        assert event.partition_key == "tx-001"
        assert event.event_id

    def test_each_envelope_has_own_event_id(self, transaction: Transaction) -> None:
        """Test two envelopes of the same transition differ in event id."""
        first = TransactionEvent.from_transaction(TransactionEventType.TRANSACTION_CREATED, transaction)
        second = TransactionEvent.from_transaction(TransactionEventType.TRANSACTION_CREATED, transaction)

        assert first.event_id != second.event_id

    def test_envelope_is_immutable(self, transaction: Transaction) -> None:
        """Test envelopes cannot be changed after creation."""
        event = TransactionEvent.from_transaction(TransactionEventType.TRANSACTION_CREATED, transaction)

        with pytest.raises(AttributeError):
            event.symbol = "MSFT"

    def test_wire_format(self, transaction: Transaction) -> None:
        """Test camelCase keys, string decimals and ISO timestamp."""
        event = TransactionEvent(
            event_type=TransactionEventType.TRANSACTION_COMPLETED,
            transaction_id="tx-001",
            portfolio_id="pf-001",
            account_number="ACC-001",
            transaction_type=TransactionType.BUY,
            symbol="AAPL",
            quantity=Decimal("100"),
            price=Decimal("150.00"),
            total_amount=Decimal("15009.99"),
            status=TransactionStatus.COMPLETED,
            timestamp=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
            event_id="evt-1",
        )

        wire = json.loads(event.encode())

        assert wire == {
            "eventId": "evt-1",
            "eventType": "TRANSACTION_COMPLETED",
            "transactionId": "tx-001",
            "portfolioId": "pf-001",
            "accountNumber": "ACC-001",
            "transactionType": "BUY",
            "symbol": "AAPL",
            "quantity": "100",
            "price": "150.00",
            "totalAmount": "15009.99",
            "status": "COMPLETED",
            "timestamp": "2024-01-15T10:30:00+00:00",
        }

    def test_decode_restores_envelope(self, transaction: Transaction) -> None:
        """Test decoding yields an equal envelope with exact decimals."""
        event = TransactionEvent.from_transaction(
            TransactionEventType.TRANSACTION_COMPLETED, transaction
        )

        decoded = decode_envelope(event.encode())

        assert decoded == event
        assert isinstance(decoded.total_amount, Decimal)


class TestPortfolioEvent:
    """Tests for PortfolioEvent."""

    def test_from_portfolio(self) -> None:
        """Test the envelope copies identity and total value."""
        portfolio = Portfolio(
            portfolio_id="pf-001",
            client_id="client-001",
            account_number="ACC-001",
            cash_balance=Decimal("5000"),
        )

        event = PortfolioEvent.from_portfolio(PortfolioEventType.PORTFOLIO_CREATED, portfolio)

        assert event.partition_key == "pf-001"
        assert event.total_value == Decimal("5000")
        assert json.loads(event.encode())["totalValue"] == "5000"

    def test_decode_dispatches_on_event_type(self) -> None:
        """Test portfolio payloads decode to PortfolioEvent."""
        event = PortfolioEvent(
            event_type=PortfolioEventType.HOLDING_ADDED,
            portfolio_id="pf-001",
            client_id="client-001",
            account_number="ACC-001",
            total_value=Decimal("12.50"),
        )

        decoded = decode_envelope(event.encode().decode("utf-8"))

        assert isinstance(decoded, PortfolioEvent)
        assert decoded == event


class TestDecodeEnvelopeErrors:
    """Tests for decode_envelope failures."""

    def test_not_json(self) -> None:
        with pytest.raises(EventDecodeError):
            decode_envelope(b"\x00garbage")

    def test_unknown_event_type(self) -> None:
        with pytest.raises(EventDecodeError, match="Unknown eventType"):
            decode_envelope(b'{"eventType": "SOMETHING_ELSE"}')

    def test_missing_field(self) -> None:
        with pytest.raises(EventDecodeError, match="transactionId"):
            decode_envelope(
                b'{"eventId": "e", "eventType": "TRANSACTION_CREATED", '
                b'"transactionType": "BUY", "status": "PENDING"}'
            )

    def test_bad_decimal(self) -> None:
        payload = {
            "eventId": "e",
            "eventType": "PORTFOLIO_UPDATED",
            "portfolioId": "pf",
            "clientId": "c",
            "accountNumber": "a",
            "totalValue": "lots",
            "timestamp": "2024-01-15T10:30:00+00:00",
        }
        with pytest.raises(EventDecodeError, match="totalValue"):
            decode_envelope(json.dumps(payload))

    def test_bad_enum(self) -> None:
        payload = {
            "eventId": "e",
            "eventType": "TRANSACTION_CREATED",
            "transactionType": "SHORT",
            "status": "PENDING",
        }
        with pytest.raises(EventDecodeError):
            decode_envelope(json.dumps(payload))
