"""Tests for the transaction state machine."""

import threading
import time
from decimal import Decimal

import pytest

from portfolio_events.broker import InMemoryBroker
from portfolio_events.config import SettlementConfig
from portfolio_events.exceptions import (
    InvalidStateError,
    NotFoundError,
    SettlementFailure,
    ValidationError,
)
from portfolio_events.models import (
    Transaction,
    TransactionEventType,
    TransactionRequest,
    TransactionStatus,
    TransactionType,
    decode_envelope,
)
from portfolio_events.services import EventPublisher, SimulatedSettlement, TransactionStateMachine
from portfolio_events.store import InMemoryRepository


def buy_request(**overrides) -> TransactionRequest:
    fields = dict(
        portfolio_id="pf-001",
        account_number="ACC-001",
        transaction_type=TransactionType.BUY,
        symbol="aapl",
        quantity=Decimal("100"),
        price=Decimal("150.00"),
        commission=Decimal("9.99"),
    )
    fields.update(overrides)
    return TransactionRequest(**fields)


def event_types(publisher: EventPublisher, broker: InMemoryBroker, transaction_id: str) -> list:
    assert publisher.flush(2.0)
    events = [decode_envelope(r.value) for r in broker.records("transaction-events")]
    return [e.event_type for e in events if e.transaction_id == transaction_id]


class BlockingSettlement:
    """Settlement that waits until released."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def settle(self, transaction: Transaction) -> None:
        self.started.set()
        self.release.wait(5.0)


class HangOnceSettlement:
    """Settlement whose first call waits until released; later calls take ``latency``."""

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()

    def settle(self, transaction: Transaction) -> None:
        self.calls += 1
        if self.calls == 1:
            self.started.set()
            self.release.wait(1.0)
        else:
            time.sleep(self.latency)


class TestCreate:
    """Tests for creating transactions."""

    def test_buy_completes(
        self,
        state_machine: TransactionStateMachine,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        """Test a BUY runs PENDING -> PROCESSING -> COMPLETED with one event per step."""
        tx = state_machine.create(buy_request())

        assert tx.status == TransactionStatus.COMPLETED
        assert tx.symbol == "AAPL"
        assert tx.total_amount == Decimal("15009.99")
        assert tx.processed_date is not None
        assert event_types(publisher, broker, tx.transaction_id) == [
            TransactionEventType.TRANSACTION_CREATED,
            TransactionEventType.TRANSACTION_PROCESSING,
            TransactionEventType.TRANSACTION_COMPLETED,
        ]

    def test_events_share_partition(
        self,
        state_machine: TransactionStateMachine,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        tx = state_machine.create(buy_request())

        assert publisher.flush(2.0)
        records = broker.records("transaction-events")
        assert {r.key for r in records} == {tx.transaction_id}
        assert len({r.partition for r in records}) == 1

    def test_type_as_string(self, state_machine: TransactionStateMachine) -> None:
        tx = state_machine.create(buy_request(transaction_type=" sell "))

        assert tx.transaction_type == TransactionType.SELL

    def test_commission_defaults_to_zero(self, state_machine: TransactionStateMachine) -> None:
        tx = state_machine.create(buy_request(commission=None))

        assert tx.commission == Decimal("0")
        assert tx.total_amount == Decimal("15000.00")

    def test_deposit_without_symbol(self, state_machine: TransactionStateMachine) -> None:
        tx = state_machine.create(
            buy_request(transaction_type=TransactionType.DEPOSIT, symbol="", price="5000")
        )

        assert tx.status == TransactionStatus.COMPLETED
        assert tx.total_amount == Decimal("500009.99")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"transaction_type": "SHORT"},
            {"quantity": Decimal("0")},
            {"quantity": "-5"},
            {"price": Decimal("0")},
            {"price": "abc"},
            {"commission": Decimal("-1")},
            {"symbol": ""},
            {"portfolio_id": ""},
            {"account_number": ""},
            {"currency": "DOLLARS"},
        ],
    )
    def test_invalid_request_has_no_effects(
        self,
        overrides: dict,
        state_machine: TransactionStateMachine,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        """Test rejected requests store and publish nothing."""
        with pytest.raises(ValidationError):
            state_machine.create(buy_request(**overrides))

        assert len(transaction_repository) == 0
        assert publisher.flush(2.0)
        assert broker.records("transaction-events") == []


class TestSettlementOutcomes:
    """Tests for failed and timed-out settlement."""

    def test_failure_marks_failed_and_raises(
        self,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        machine = TransactionStateMachine(
            transaction_repository, publisher, SimulatedSettlement(latency_seconds=0, failure_rate=1.0)
        )

        with pytest.raises(SettlementFailure) as exc_info:
            machine.create(buy_request())
        machine.close()

        failed = exc_info.value.transaction
        assert failed.status == TransactionStatus.FAILED
        assert failed.processed_date is None
        assert transaction_repository.find_by_id(failed.transaction_id).status == TransactionStatus.FAILED
        assert event_types(publisher, broker, failed.transaction_id) == [
            TransactionEventType.TRANSACTION_CREATED,
            TransactionEventType.TRANSACTION_PROCESSING,
            TransactionEventType.TRANSACTION_FAILED,
        ]

    def test_timeout_marks_failed(
        self,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
    ) -> None:
        settlement = BlockingSettlement()
        machine = TransactionStateMachine(
            transaction_repository,
            publisher,
            settlement,
            config=SettlementConfig(timeout_seconds=0.1),
        )

        with pytest.raises(SettlementFailure, match="timed out"):
            machine.create(buy_request())
        settlement.release.set()
        machine.close()

        (tx,) = transaction_repository.find_all()
        assert tx.status == TransactionStatus.FAILED

    def test_hung_settlement_does_not_starve_later_ones(
        self,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test a settlement that never returns frees its slot on timeout."""
        settlement = HangOnceSettlement()
        machine = TransactionStateMachine(
            transaction_repository,
            publisher,
            settlement,
            config=SettlementConfig(timeout_seconds=0.2, workers=1),
        )

        with caplog.at_level("ERROR", logger="portfolio_events.services.transactions"):
            with pytest.raises(SettlementFailure, match="timed out"):
                machine.create(buy_request())
            healthy = machine.create(buy_request(symbol="msft"))
        settlement.release.set()
        machine.close()

        assert healthy.status == TransactionStatus.COMPLETED
        assert machine.abandoned_settlements == 1
        assert "worker abandoned" in caplog.text

    def test_queueing_for_a_slot_does_not_count_against_timeout(
        self,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
    ) -> None:
        settlement = HangOnceSettlement(latency=0.6)
        machine = TransactionStateMachine(
            transaction_repository,
            publisher,
            settlement,
            config=SettlementConfig(timeout_seconds=1.0, workers=1),
        )
        first = threading.Thread(target=machine.create, args=(buy_request(),))
        first.start()
        assert settlement.started.wait(2.0)

        threading.Timer(0.6, settlement.release.set).start()
        second = machine.create(buy_request(symbol="msft"))
        first.join(2.0)
        machine.close()

        # ~0.6s queued for the slot plus ~0.6s settling exceeds the 1s timeout
        # only if the queueing is counted
        assert second.status == TransactionStatus.COMPLETED
        assert machine.abandoned_settlements == 0


class TestProcess:
    """Tests for process."""

    def test_non_pending_is_noop(
        self,
        state_machine: TransactionStateMachine,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        tx = state_machine.create(buy_request())

        again = state_machine.process(tx.transaction_id)

        assert again.status == TransactionStatus.COMPLETED
        assert len(event_types(publisher, broker, tx.transaction_id)) == 3

    def test_unknown_transaction(self, state_machine: TransactionStateMachine) -> None:
        with pytest.raises(NotFoundError):
            state_machine.process("missing")


class TestCancel:
    """Tests for cancel."""

    def test_cancel_pending(
        self,
        state_machine: TransactionStateMachine,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        transaction_repository.save(
            Transaction(
                transaction_id="tx-pending",
                portfolio_id="pf-001",
                account_number="ACC-001",
                transaction_type=TransactionType.BUY,
                symbol="AAPL",
                quantity=Decimal("1"),
                price=Decimal("1"),
            )
        )

        cancelled = state_machine.cancel("tx-pending")

        assert cancelled.status == TransactionStatus.CANCELLED
        assert event_types(publisher, broker, "tx-pending") == [
            TransactionEventType.TRANSACTION_CANCELLED
        ]
        # Cancelled work is never picked up again.
        assert state_machine.process("tx-pending").status == TransactionStatus.CANCELLED

    @pytest.mark.parametrize("settle_fails", [False, True])
    def test_cancel_terminal_rejected(
        self,
        settle_fails: bool,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
    ) -> None:
        machine = TransactionStateMachine(
            transaction_repository,
            publisher,
            SimulatedSettlement(latency_seconds=0, failure_rate=1.0 if settle_fails else 0.0),
        )
        try:
            tx = machine.create(buy_request())
        except SettlementFailure as e:
            tx = e.transaction

        with pytest.raises(InvalidStateError):
            machine.cancel(tx.transaction_id)
        with pytest.raises(InvalidStateError):
            machine.cancel(tx.transaction_id)
        machine.close()

    def test_cancel_during_settlement_discards_outcome(
        self,
        transaction_repository: InMemoryRepository,
        publisher: EventPublisher,
        broker: InMemoryBroker,
    ) -> None:
        """Test a cancel that lands while settling wins over the settlement result."""
        settlement = BlockingSettlement()
        machine = TransactionStateMachine(transaction_repository, publisher, settlement)
        result: dict = {}

        def create() -> None:
            result["tx"] = machine.create(buy_request())

        worker = threading.Thread(target=create)
        worker.start()
        assert settlement.started.wait(2.0)

        (processing,) = transaction_repository.find_all()
        assert processing.status == TransactionStatus.PROCESSING
        cancelled = machine.cancel(processing.transaction_id)
        settlement.release.set()
        worker.join(2.0)
        machine.close()

        assert cancelled.status == TransactionStatus.CANCELLED
        assert result["tx"].status == TransactionStatus.CANCELLED
        stored = transaction_repository.find_by_id(processing.transaction_id)
        assert stored.status == TransactionStatus.CANCELLED
        assert event_types(publisher, broker, processing.transaction_id) == [
            TransactionEventType.TRANSACTION_CREATED,
            TransactionEventType.TRANSACTION_PROCESSING,
            TransactionEventType.TRANSACTION_CANCELLED,
        ]


class TestQueries:
    """Tests for the read operations."""

    def test_get_and_lists(self, state_machine: TransactionStateMachine) -> None:
        first = state_machine.create(buy_request())
        second = state_machine.create(buy_request(portfolio_id="pf-002", account_number="ACC-002"))

        assert state_machine.get(first.transaction_id).transaction_id == first.transaction_id
        assert [t.transaction_id for t in state_machine.list_by_portfolio("pf-002")] == [
            second.transaction_id
        ]
        assert [t.transaction_id for t in state_machine.list_by_account("ACC-001")] == [
            first.transaction_id
        ]
        assert [t.transaction_id for t in state_machine.list_all()] == [
            first.transaction_id,
            second.transaction_id,
        ]

    def test_get_missing(self, state_machine: TransactionStateMachine) -> None:
        with pytest.raises(NotFoundError):
            state_machine.get("missing")
