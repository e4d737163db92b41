"""Tests for custom exception hierarchy."""

from decimal import Decimal

from portfolio_events.exceptions import (
    BrokerUnavailable,
    ConfigurationError,
    ConflictError,
    EventDecodeError,
    InsufficientHoldingError,
    InvalidStateError,
    NonRetryableError,
    NotFoundError,
    PortfolioEventsError,
    SettlementFailure,
    ValidationError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_base_is_exception(self) -> None:
        assert isinstance(PortfolioEventsError("test"), Exception)

    def test_request_errors_are_base_errors(self) -> None:
        for error_class in (ValidationError, ConflictError, InvalidStateError):
            assert isinstance(error_class("test"), PortfolioEventsError)

    def test_not_found_is_non_retryable(self) -> None:
        assert isinstance(NotFoundError("test"), NonRetryableError)

    def test_event_decode_is_non_retryable(self) -> None:
        assert isinstance(EventDecodeError("test"), NonRetryableError)

    def test_broker_unavailable_is_retryable(self) -> None:
        err = BrokerUnavailable("down")
        assert isinstance(err, PortfolioEventsError)
        assert not isinstance(err, NonRetryableError)

    def test_configuration_error_is_base_error(self) -> None:
        assert isinstance(ConfigurationError("test"), PortfolioEventsError)


class TestInsufficientHoldingError:
    """Tests for InsufficientHoldingError."""

    def test_attributes_and_message(self) -> None:
        err = InsufficientHoldingError("AAPL", Decimal("20"), Decimal("10"))

        assert isinstance(err, NonRetryableError)
        assert err.symbol == "AAPL"
        assert err.requested == Decimal("20")
        assert err.available == Decimal("10")
        assert str(err) == "Cannot sell 20 AAPL: only 10 held"


class TestSettlementFailure:
    """Tests for SettlementFailure."""

    def test_carries_transaction(self) -> None:
        marker = object()
        err = SettlementFailure("rejected", transaction=marker)

        assert str(err) == "rejected"
        assert err.transaction is marker

    def test_transaction_defaults_to_none(self) -> None:
        assert SettlementFailure("rejected").transaction is None
