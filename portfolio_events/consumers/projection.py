"""Portfolio projection: apply completed transactions to portfolios."""

import logging
from decimal import ROUND_HALF_UP, Decimal

from portfolio_events.broker.base import Broker
from portfolio_events.config import CacheConfig, RetryConfig, TopicConfig
from portfolio_events.consumers.runner import ConsumerRunner
from portfolio_events.exceptions import InsufficientHoldingError, NotFoundError
from portfolio_events.locks import KeyedLocks
from portfolio_events.models import (
    EventEnvelope,
    Holding,
    Portfolio,
    TransactionEvent,
    TransactionEventType,
    TransactionType,
)
from portfolio_events.models.base import ZERO, utcnow
from portfolio_events.services.portfolios import portfolio_cache_key
from portfolio_events.store.base import Cache, IdempotencyLedger, Repository

logger = logging.getLogger(__name__)

COST_PLACES = Decimal("0.01")


def weighted_average_cost(
    quantity: Decimal, average_cost: Decimal, added_quantity: Decimal, price: Decimal
) -> Decimal:
    """Average cost after buying ``added_quantity`` at ``price``, to the cent."""
    total_cost = quantity * average_cost + added_quantity * price
    return (total_cost / (quantity + added_quantity)).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def apply_buy(portfolio: Portfolio, event: TransactionEvent) -> None:
    holding = portfolio.find_holding(event.symbol)
    if holding is None:
        portfolio.holdings.append(
            Holding(
                symbol=event.symbol,
                quantity=event.quantity,
                average_cost=event.price,
                current_price=event.price,
            )
        )
        logger.debug("Created new holding %s: %s @ %s", event.symbol, event.quantity, event.price)
    else:
        previous_quantity, previous_cost = holding.quantity, holding.average_cost
        holding.average_cost = weighted_average_cost(
            holding.quantity, holding.average_cost, event.quantity, event.price
        )
        holding.quantity += event.quantity
        holding.current_price = event.price
        holding.last_updated = utcnow()
        logger.debug(
            "Updated holding %s: quantity %s -> %s, avg cost %s -> %s",
            event.symbol,
            previous_quantity,
            holding.quantity,
            previous_cost,
            holding.average_cost,
        )
    portfolio.cash_balance -= event.total_amount


def apply_sell(portfolio: Portfolio, event: TransactionEvent) -> None:
    """Reduce the holding; raises before touching anything if it cannot."""
    holding = portfolio.find_holding(event.symbol)
    available = holding.quantity if holding is not None else ZERO
    if holding is None or event.quantity > holding.quantity:
        raise InsufficientHoldingError(event.symbol, event.quantity, available)

    remaining = holding.quantity - event.quantity
    if remaining == ZERO:
        portfolio.remove_holding(event.symbol)
        logger.debug("Removed holding %s (sold all shares)", event.symbol)
    else:
        holding.quantity = remaining
        holding.current_price = event.price
        holding.last_updated = utcnow()
        logger.debug("Reduced holding %s to %s", event.symbol, remaining)
    portfolio.cash_balance += event.total_amount


def apply_credit(portfolio: Portfolio, event: TransactionEvent) -> None:
    portfolio.cash_balance += event.total_amount


def apply_debit(portfolio: Portfolio, event: TransactionEvent) -> None:
    portfolio.cash_balance -= event.total_amount


APPLIERS = {
    TransactionType.BUY: apply_buy,
    TransactionType.SELL: apply_sell,
    TransactionType.DEPOSIT: apply_credit,
    TransactionType.DIVIDEND: apply_credit,
    TransactionType.WITHDRAWAL: apply_debit,
}


class PortfolioProjectionUpdater:
    """Consumer keeping portfolios in step with completed transactions.

    Only TRANSACTION_COMPLETED events change anything. Each event is
    applied at most once per portfolio: the ledger check, the mutation,
    the save, the cache eviction and the ledger entry all happen while
    the portfolio's lock is held. The lock instance is shared with
    ``PortfolioService`` so direct edits and projection updates never
    interleave.

    Parameters
    ----------
    repository : Repository[Portfolio]
        Portfolio persistence.
    cache : Cache
        Cached portfolio views, evicted after each change.
    ledger : IdempotencyLedger
        Processed event ids.
    locks : KeyedLocks | None
        Per-portfolio locks.
    cache_config : CacheConfig | None
        Cache key prefix.
    name : str
        Consumer name used in the ledger.
    """

    def __init__(
        self,
        repository: Repository[Portfolio],
        cache: Cache,
        ledger: IdempotencyLedger,
        locks: KeyedLocks | None = None,
        cache_config: CacheConfig | None = None,
        name: str = TopicConfig.projection_group,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.ledger = ledger
        self.locks = locks or KeyedLocks()
        self.cache_config = cache_config or CacheConfig()
        self.name = name

    def handle(self, event: EventEnvelope) -> bool:
        """Apply ``event``; returns whether the portfolio changed.

        Raises
        ------
        InsufficientHoldingError
            If a SELL exceeds the held quantity; the portfolio is unchanged.
        NotFoundError
            If the portfolio does not exist.
        """
        if not isinstance(event, TransactionEvent):
            return False
        if event.event_type != TransactionEventType.TRANSACTION_COMPLETED:
            logger.debug("Ignoring non-completed transaction event: %s", event.event_type.value)
            return False

        with self.locks.hold(event.portfolio_id):
            if self.ledger.seen(self.name, event.event_id):
                logger.info(
                    "Skipping duplicate event %s for transaction %s",
                    event.event_id,
                    event.transaction_id,
                )
                return False

            portfolio = self.repository.find_by_id(event.portfolio_id)
            if portfolio is None:
                raise NotFoundError(f"Portfolio not found: {event.portfolio_id}")

            logger.info(
                "Processing %s transaction for portfolio %s: %s %s @ %s",
                event.transaction_type.value,
                event.portfolio_id,
                event.quantity,
                event.symbol,
                event.price,
            )
            APPLIERS[event.transaction_type](portfolio, event)
            portfolio.recalculate()
            portfolio.updated_at = utcnow()
            self.repository.save(portfolio)
            self.cache.evict(portfolio_cache_key(event.portfolio_id, self.cache_config.key_prefix))
            self.ledger.mark_seen(self.name, event.event_id)

        logger.info(
            "Portfolio %s updated successfully after %s transaction",
            event.portfolio_id,
            event.transaction_type.value,
        )
        return True

    def runner(
        self,
        broker: Broker,
        topics: TopicConfig | None = None,
        retry: RetryConfig | None = None,
        workers: int = 1,
    ) -> ConsumerRunner:
        """Consumer runner feeding the transaction topic into ``handle``."""
        topics = topics or TopicConfig()
        return ConsumerRunner(
            broker,
            topics.transaction_events,
            topics.projection_group,
            self.handle,
            retry=retry,
            workers=workers,
            topics=topics,
        )
