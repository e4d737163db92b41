"""Portfolio service: direct portfolio and holding operations with a cached read view."""

import logging
import threading
from decimal import Decimal
from typing import Any, Callable

from portfolio_events.config import CacheConfig
from portfolio_events.exceptions import ConflictError, NotFoundError, ValidationError
from portfolio_events.locks import KeyedLocks
from portfolio_events.models import (
    Holding,
    HoldingRequest,
    HoldingUpdate,
    Portfolio,
    PortfolioEventType,
    PortfolioRequest,
    PortfolioUpdate,
)
from portfolio_events.models.base import ZERO, new_id, to_decimal, utcnow
from portfolio_events.services.publisher import EventPublisher
from portfolio_events.store.base import Cache, Repository

logger = logging.getLogger(__name__)


def portfolio_cache_key(portfolio_id: str, prefix: str = CacheConfig.key_prefix) -> str:
    """Cache key of a portfolio view."""
    return f"{prefix}::{portfolio_id}"


def _decimal(value: Any, field_name: str) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}: {e}") from e


class PortfolioService:
    """Create, read and mutate portfolios.

    Writes run under the per-portfolio lock shared with the projection
    updater, restore the total-value invariant, persist, evict the cached
    view and then publish a portfolio event. Reads are cache-aside; a miss
    is filled under the same lock so a fill can never overwrite the
    eviction of a newer write.

    Parameters
    ----------
    repository : Repository[Portfolio]
        Portfolio persistence.
    cache : Cache
        Cached portfolio views.
    publisher : EventPublisher
        Announces portfolio changes.
    locks : KeyedLocks | None
        Per-portfolio locks; pass the projection updater's instance.
    cache_config : CacheConfig | None
        TTL and key prefix for cached views.
    """

    def __init__(
        self,
        repository: Repository[Portfolio],
        cache: Cache,
        publisher: EventPublisher,
        locks: KeyedLocks | None = None,
        cache_config: CacheConfig | None = None,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.publisher = publisher
        self.locks = locks or KeyedLocks()
        self.cache_config = cache_config or CacheConfig()
        self._create_lock = threading.Lock()

    def _cache_key(self, portfolio_id: str) -> str:
        return portfolio_cache_key(portfolio_id, self.cache_config.key_prefix)

    def create_portfolio(self, request: PortfolioRequest) -> Portfolio:
        """Open a portfolio; account numbers are unique."""
        logger.info("Creating portfolio for client: %s", request.client_id)
        if not request.client_id:
            raise ValidationError("Client id is required")
        if not request.account_number:
            raise ValidationError("Account number is required")
        cash_balance = _decimal(request.cash_balance, "cash balance")

        with self._create_lock:
            if self._find_by_account_number(request.account_number) is not None:
                raise ConflictError(
                    f"Portfolio with account number {request.account_number} already exists"
                )
            portfolio = Portfolio(
                portfolio_id=new_id(),
                client_id=request.client_id,
                client_name=request.client_name,
                account_number=request.account_number,
                currency=(request.currency or "USD").upper(),
                cash_balance=cash_balance,
            )
            saved = self.repository.save(portfolio)

        self.publisher.publish_portfolio_event(PortfolioEventType.PORTFOLIO_CREATED, saved)
        logger.info("Portfolio created successfully with ID: %s", saved.portfolio_id)
        return saved

    def get_portfolio(self, portfolio_id: str) -> Portfolio:
        """Portfolio view, served from cache when present."""
        key = self._cache_key(portfolio_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for portfolio %s", portfolio_id)
            return cached

        with self.locks.hold(portfolio_id):
            cached = self.cache.get(key)
            if cached is not None:
                return cached
            portfolio = self._load(portfolio_id)
            self.cache.put(key, portfolio, self.cache_config.ttl_seconds)
        logger.debug("Cache filled for portfolio %s", portfolio_id)
        return portfolio

    def _find_by_account_number(self, account_number: str) -> Portfolio | None:
        for portfolio in self.repository.find_all():
            if portfolio.account_number == account_number:
                return portfolio
        return None

    def get_by_account_number(self, account_number: str) -> Portfolio:
        portfolio = self._find_by_account_number(account_number)
        if portfolio is None:
            raise NotFoundError(f"Portfolio not found with account number: {account_number}")
        return portfolio

    def list_by_client(self, client_id: str) -> list[Portfolio]:
        return [p for p in self.repository.find_all() if p.client_id == client_id]

    def list_all(self) -> list[Portfolio]:
        return self.repository.find_all()

    def update_portfolio(self, portfolio_id: str, update: PortfolioUpdate) -> Portfolio:
        """Apply a partial attribute update."""
        logger.info("Updating portfolio with ID: %s", portfolio_id)

        def apply(portfolio: Portfolio) -> None:
            if update.client_name is not None:
                portfolio.client_name = update.client_name
            if update.currency is not None:
                portfolio.currency = update.currency.upper()
            if update.cash_balance is not None:
                portfolio.cash_balance = _decimal(update.cash_balance, "cash balance")
            if update.status is not None:
                portfolio.status = update.status

        return self._mutate(portfolio_id, apply, PortfolioEventType.PORTFOLIO_UPDATED)

    def add_holding(self, portfolio_id: str, request: HoldingRequest) -> Portfolio:
        """Add a new holding; the symbol must not be held yet."""
        symbol = request.symbol.strip().upper()
        logger.info("Adding holding %s to portfolio: %s", symbol, portfolio_id)
        quantity = _decimal(request.quantity, "quantity")
        average_cost = _decimal(request.average_cost, "average cost")
        current_price = _decimal(request.current_price, "current price")
        if not symbol:
            raise ValidationError("Symbol is required")
        if quantity <= ZERO:
            raise ValidationError(f"Quantity must be positive, got {quantity}")
        if average_cost < ZERO or current_price < ZERO:
            raise ValidationError("Prices must not be negative")

        def apply(portfolio: Portfolio) -> None:
            if portfolio.find_holding(symbol) is not None:
                raise ConflictError(f"Holding {symbol} already exists in portfolio {portfolio_id}")
            portfolio.holdings.append(
                Holding(
                    symbol=symbol,
                    quantity=quantity,
                    average_cost=average_cost,
                    current_price=current_price,
                    name=request.name,
                    asset_type=request.asset_type,
                )
            )

        return self._mutate(portfolio_id, apply, PortfolioEventType.HOLDING_ADDED)

    def update_holding(self, portfolio_id: str, symbol: str, update: HoldingUpdate) -> Portfolio:
        """Change quantity, cost or price of an existing holding."""
        symbol = symbol.strip().upper()
        logger.info("Updating holding %s in portfolio: %s", symbol, portfolio_id)

        def apply(portfolio: Portfolio) -> None:
            holding = portfolio.find_holding(symbol)
            if holding is None:
                raise NotFoundError(f"Holding not found with symbol: {symbol}")
            if update.quantity is not None:
                quantity = _decimal(update.quantity, "quantity")
                if quantity <= ZERO:
                    raise ValidationError(f"Quantity must be positive, got {quantity}")
                holding.quantity = quantity
            if update.average_cost is not None:
                holding.average_cost = _decimal(update.average_cost, "average cost")
            if update.current_price is not None:
                holding.current_price = _decimal(update.current_price, "current price")
            if update.name is not None:
                holding.name = update.name
            holding.last_updated = utcnow()

        return self._mutate(portfolio_id, apply, PortfolioEventType.HOLDING_UPDATED)

    def remove_holding(self, portfolio_id: str, symbol: str) -> Portfolio:
        symbol = symbol.strip().upper()
        logger.info("Removing holding %s from portfolio: %s", symbol, portfolio_id)

        def apply(portfolio: Portfolio) -> None:
            if not portfolio.remove_holding(symbol):
                raise NotFoundError(f"Holding not found with symbol: {symbol}")

        return self._mutate(portfolio_id, apply, PortfolioEventType.HOLDING_REMOVED)

    def _mutate(
        self,
        portfolio_id: str,
        apply: Callable[[Portfolio], None],
        event_type: PortfolioEventType,
    ) -> Portfolio:
        with self.locks.hold(portfolio_id):
            portfolio = self._load(portfolio_id)
            apply(portfolio)
            portfolio.recalculate()
            portfolio.updated_at = utcnow()
            saved = self.repository.save(portfolio)
            self.cache.evict(self._cache_key(portfolio_id))
            self.publisher.publish_portfolio_event(event_type, saved)
        logger.info("Portfolio %s updated: %s", portfolio_id, event_type.value)
        return saved

    def _load(self, portfolio_id: str) -> Portfolio:
        portfolio = self.repository.find_by_id(portfolio_id)
        if portfolio is None:
            raise NotFoundError(f"Portfolio not found with ID: {portfolio_id}")
        return portfolio
