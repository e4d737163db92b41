"""Pytest configuration and fixtures."""

from decimal import Decimal
from typing import Iterator

import pytest

from portfolio_events.broker import InMemoryBroker
from portfolio_events.config import RetryConfig, SettlementConfig
from portfolio_events.consumers import PortfolioProjectionUpdater
from portfolio_events.locks import KeyedLocks
from portfolio_events.models import (
    Portfolio,
    PortfolioRequest,
    Transaction,
    TransactionEvent,
    TransactionEventType,
    TransactionStatus,
    TransactionType,
)
from portfolio_events.services import (
    EventPublisher,
    PortfolioService,
    SimulatedSettlement,
    TransactionStateMachine,
)
from portfolio_events.store import InMemoryCache, InMemoryIdempotencyLedger, InMemoryRepository

FAST_RETRY = RetryConfig(max_retries=2, initial_delay_seconds=0.0, max_delay_seconds=0.0)


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def broker() -> InMemoryBroker:
    """In-memory broker with three partitions per topic."""
    return InMemoryBroker(partitions=3)


@pytest.fixture
def publisher(broker: InMemoryBroker) -> Iterator[EventPublisher]:
    """Publisher with instant retries, closed after the test."""
    publisher = EventPublisher(broker, retry=FAST_RETRY)
    yield publisher
    publisher.close(timeout=2.0)


@pytest.fixture
def transaction_repository() -> InMemoryRepository[Transaction]:
    return InMemoryRepository("transaction_id")


@pytest.fixture
def portfolio_repository() -> InMemoryRepository[Portfolio]:
    return InMemoryRepository("portfolio_id")


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def ledger() -> InMemoryIdempotencyLedger:
    return InMemoryIdempotencyLedger()


@pytest.fixture
def portfolio_locks() -> KeyedLocks:
    """Portfolio locks shared by the service and the projection."""
    return KeyedLocks()


@pytest.fixture
def state_machine(
    transaction_repository: InMemoryRepository[Transaction],
    publisher: EventPublisher,
) -> Iterator[TransactionStateMachine]:
    """State machine with instant, always-successful settlement."""
    machine = TransactionStateMachine(
        transaction_repository,
        publisher,
        SimulatedSettlement(latency_seconds=0.0),
        config=SettlementConfig(timeout_seconds=2.0),
    )
    yield machine
    machine.close()


@pytest.fixture
def portfolio_service(
    portfolio_repository: InMemoryRepository[Portfolio],
    cache: InMemoryCache,
    publisher: EventPublisher,
    portfolio_locks: KeyedLocks,
) -> PortfolioService:
    return PortfolioService(portfolio_repository, cache, publisher, locks=portfolio_locks)


@pytest.fixture
def projection(
    portfolio_repository: InMemoryRepository[Portfolio],
    cache: InMemoryCache,
    ledger: InMemoryIdempotencyLedger,
    portfolio_locks: KeyedLocks,
) -> PortfolioProjectionUpdater:
    return PortfolioProjectionUpdater(portfolio_repository, cache, ledger, locks=portfolio_locks)


@pytest.fixture
def funded_portfolio(portfolio_service: PortfolioService) -> Portfolio:
    """Portfolio with 100,000 cash and no holdings."""
    return portfolio_service.create_portfolio(
        PortfolioRequest(
            client_id="client-test-001",
            client_name="Test Client",
            account_number="ACC-TEST-001",
            cash_balance=Decimal("100000"),
        )
    )


def build_event(
    portfolio: Portfolio,
    transaction_type: TransactionType,
    symbol: str,
    quantity: str,
    price: str,
    commission: str = "0",
    event_type: TransactionEventType = TransactionEventType.TRANSACTION_COMPLETED,
) -> TransactionEvent:
    """Envelope for a transaction on ``portfolio``, COMPLETED by default."""
    transaction = Transaction(
        transaction_id=f"tx-{symbol or transaction_type.value}-{quantity}",
        portfolio_id=portfolio.portfolio_id,
        account_number=portfolio.account_number,
        transaction_type=transaction_type,
        symbol=symbol,
        quantity=Decimal(quantity),
        price=Decimal(price),
        commission=Decimal(commission),
        status=TransactionStatus.COMPLETED,
    )
    return TransactionEvent.from_transaction(event_type, transaction)


@pytest.fixture
def completed_event():
    """Factory for transaction envelopes, see ``build_event``."""
    return build_event
