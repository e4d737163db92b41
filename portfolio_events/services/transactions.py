"""Transaction state machine: the only component that changes transaction status.

Lifecycle::

    PENDING -> PROCESSING -> COMPLETED | FAILED
    PENDING | PROCESSING -> CANCELLED

Every transition is persisted first and then announced through the
event publisher. Publishing is fire-and-forget, so a broker outage never
blocks or rolls back a transition.
"""

import logging
import threading

from portfolio_events.config import SettlementConfig
from portfolio_events.exceptions import (
    InvalidStateError,
    NotFoundError,
    SettlementFailure,
    ValidationError,
)
from portfolio_events.locks import KeyedLocks
from portfolio_events.models import (
    STATUS_EVENTS,
    Transaction,
    TransactionRequest,
    TransactionStatus,
    TransactionType,
    validate_amounts,
)
from portfolio_events.models.base import ZERO, new_id, to_decimal
from portfolio_events.services.publisher import EventPublisher
from portfolio_events.services.settlement import Settlement
from portfolio_events.store.base import Repository

logger = logging.getLogger(__name__)

# Transaction types that refer to an instrument.
SYMBOL_REQUIRED = frozenset({TransactionType.BUY, TransactionType.SELL, TransactionType.DIVIDEND})


class TransactionStateMachine:
    """Create, process and cancel transactions.

    Parameters
    ----------
    repository : Repository[Transaction]
        Transaction persistence.
    publisher : EventPublisher
        Announces each transition.
    settlement : Settlement
        Decides between COMPLETED and FAILED.
    config : SettlementConfig | None
        Settlement timeout and the number of settlements run at once.

    Each settlement runs on its own daemon thread once one of the
    ``workers`` slots is free. The timeout starts when that thread starts,
    so queueing for a slot never counts against it. A settlement that
    overruns gives its slot back and is left running; it is counted in
    ``abandoned_settlements``.
    """

    def __init__(
        self,
        repository: Repository[Transaction],
        publisher: EventPublisher,
        settlement: Settlement,
        config: SettlementConfig | None = None,
    ) -> None:
        self.repository = repository
        self.publisher = publisher
        self.settlement = settlement
        self.config = config or SettlementConfig()
        self._locks = KeyedLocks()
        self.abandoned_settlements = 0
        self._slots = threading.BoundedSemaphore(self.config.workers)
        self._abandoned: list[threading.Thread] = []
        self._abandoned_lock = threading.Lock()

    def create(self, request: TransactionRequest) -> Transaction:
        """Validate and store a new PENDING transaction, then process it.

        Raises
        ------
        ValidationError
            If the request is invalid; nothing is stored or published.
        SettlementFailure
            If settlement fails; the transaction is FAILED at that point.
        """
        transaction = self._build(request)
        logger.info(
            "Creating %s transaction for portfolio %s: %s %s @ %s",
            transaction.transaction_type.value,
            transaction.portfolio_id,
            transaction.quantity,
            transaction.symbol,
            transaction.price,
        )

        with self._locks.hold(transaction.transaction_id):
            saved = self.repository.save(transaction)
            self._announce(saved)
        logger.info("Transaction created with ID: %s", saved.transaction_id)

        return self.process(saved.transaction_id)

    def _build(self, request: TransactionRequest) -> Transaction:
        raw_type = request.transaction_type
        if isinstance(raw_type, str) and not isinstance(raw_type, TransactionType):
            raw_type = raw_type.strip().upper()
        try:
            transaction_type = TransactionType(raw_type)
        except ValueError:
            raise ValidationError(
                f"Unsupported transaction type {request.transaction_type!r}"
            ) from None

        try:
            quantity = to_decimal(request.quantity)
            price = to_decimal(request.price)
            commission = ZERO if request.commission is None else to_decimal(request.commission)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        validate_amounts(quantity, price, commission)

        if not request.portfolio_id:
            raise ValidationError("Portfolio id is required")
        if not request.account_number:
            raise ValidationError("Account number is required")

        symbol = (request.symbol or "").strip().upper()
        if transaction_type in SYMBOL_REQUIRED and not symbol:
            raise ValidationError(f"Symbol is required for {transaction_type.value}")

        currency = (request.currency or "").strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Invalid currency code {request.currency!r}")

        return Transaction(
            transaction_id=new_id(),
            portfolio_id=request.portfolio_id,
            account_number=request.account_number,
            transaction_type=transaction_type,
            symbol=symbol,
            quantity=quantity,
            price=price,
            commission=commission,
            currency=currency,
            notes=request.notes or "",
            asset_name=request.asset_name,
        )

    def process(self, transaction_id: str) -> Transaction:
        """Run a PENDING transaction through settlement.

        A transaction that is not PENDING is returned unchanged, which
        makes duplicate invocations harmless. If the transaction is
        cancelled while settlement runs, the settlement outcome is
        discarded.
        """
        with self._locks.hold(transaction_id):
            transaction = self._load(transaction_id)
            if transaction.status != TransactionStatus.PENDING:
                logger.warning(
                    "Transaction %s is not in PENDING status (%s)",
                    transaction_id,
                    transaction.status.value,
                )
                return transaction

            transaction.transition_to(TransactionStatus.PROCESSING)
            transaction = self.repository.save(transaction)
            self._announce(transaction)
        logger.info("Processing transaction: %s", transaction_id)

        # No lock held while settling.
        failure = self._settle(transaction)

        with self._locks.hold(transaction_id):
            current = self._load(transaction_id)
            if current.status != TransactionStatus.PROCESSING:
                logger.info(
                    "Transaction %s became %s during settlement, outcome discarded",
                    transaction_id,
                    current.status.value,
                )
                return current

            if failure is None:
                current.transition_to(TransactionStatus.COMPLETED)
                completed = self.repository.save(current)
                self._announce(completed)
                logger.info("Transaction processed successfully: %s", transaction_id)
                return completed

            current.transition_to(TransactionStatus.FAILED)
            failed = self.repository.save(current)
            self._announce(failed)

        raise SettlementFailure(
            f"Transaction {transaction_id} failed settlement: {failure}", transaction=failed
        )

    def _settle(self, transaction: Transaction) -> str | None:
        """Run settlement with a hard time bound; returns a failure reason or None."""
        timeout = self.config.timeout_seconds
        errors: list[Exception] = []

        def run() -> None:
            try:
                self.settlement.settle(transaction)
            except Exception as e:
                errors.append(e)

        with self._slots:
            worker = threading.Thread(
                target=run, name=f"settlement-{transaction.transaction_id}", daemon=True
            )
            worker.start()
            worker.join(timeout)

        if worker.is_alive():
            with self._abandoned_lock:
                self.abandoned_settlements += 1
                self._abandoned = [t for t in self._abandoned if t.is_alive()]
                self._abandoned.append(worker)
                stuck = len(self._abandoned)
            logger.error(
                "Settlement of transaction %s exceeded %.2fs, worker abandoned (%d still running)",
                transaction.transaction_id,
                timeout,
                stuck,
            )
            return f"settlement timed out after {timeout}s"

        if errors:
            e = errors[0]
            logger.error("Failed to process transaction %s: %s", transaction.transaction_id, e)
            return str(e) or type(e).__name__
        return None

    def cancel(self, transaction_id: str) -> Transaction:
        """Cancel a PENDING or PROCESSING transaction.

        Raises
        ------
        InvalidStateError
            If the transaction is already COMPLETED, FAILED or CANCELLED.
        """
        logger.info("Cancelling transaction: %s", transaction_id)
        with self._locks.hold(transaction_id):
            transaction = self._load(transaction_id)
            if transaction.is_terminal:
                raise InvalidStateError(
                    f"Cannot cancel {transaction.status.value} transaction {transaction_id}"
                )
            transaction.transition_to(TransactionStatus.CANCELLED)
            cancelled = self.repository.save(transaction)
            self._announce(cancelled)
        return cancelled

    def _announce(self, transaction: Transaction) -> None:
        """Publish the event for the status ``transaction`` just entered."""
        self.publisher.publish_transaction_event(STATUS_EVENTS[transaction.status], transaction)

    def _load(self, transaction_id: str) -> Transaction:
        transaction = self.repository.find_by_id(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    def get(self, transaction_id: str) -> Transaction:
        """Fetch one transaction."""
        return self._load(transaction_id)

    def list_by_portfolio(self, portfolio_id: str) -> list[Transaction]:
        return [t for t in self.list_all() if t.portfolio_id == portfolio_id]

    def list_by_account(self, account_number: str) -> list[Transaction]:
        return [t for t in self.list_all() if t.account_number == account_number]

    def list_all(self) -> list[Transaction]:
        """All transactions, oldest first."""
        return sorted(self.repository.find_all(), key=lambda t: t.transaction_date)

    def close(self) -> None:
        """Report settlements that overran their timeout and are still running."""
        with self._abandoned_lock:
            stuck = [t.name for t in self._abandoned if t.is_alive()]
            self._abandoned = []
        if stuck:
            logger.warning(
                "Closing with %d abandoned settlement(s) still running: %s", len(stuck), stuck
            )
