"""Portfolio and Holding models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from portfolio_events.models.base import ZERO, utcnow
from portfolio_events.models.enums import PortfolioStatus

HUNDRED = Decimal("100")
PERCENT_PLACES = Decimal("0.0001")


@dataclass
class Holding:
    """Position in one instrument.

    ``market_value``, ``unrealized_gain_loss`` and
    ``unrealized_gain_loss_percentage`` are derived from quantity,
    average cost and current price; call ``recalculate`` after
    changing any of those.
    """

    symbol: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    name: str | None = None
    asset_type: str = "STOCK"
    market_value: Decimal = ZERO
    unrealized_gain_loss: Decimal = ZERO
    unrealized_gain_loss_percentage: Decimal = ZERO
    last_updated: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.recalculate()

    @property
    def cost_basis(self) -> Decimal:
        return self.average_cost * self.quantity

    def recalculate(self) -> None:
        """Re-derive market value and unrealized gain/loss."""
        self.market_value = self.quantity * self.current_price
        cost = self.cost_basis
        self.unrealized_gain_loss = self.market_value - cost
        if cost > ZERO:
            self.unrealized_gain_loss_percentage = (
                (self.unrealized_gain_loss / cost).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)
                * HUNDRED
            )
        else:
            self.unrealized_gain_loss_percentage = ZERO


@dataclass
class Portfolio:
    """Client portfolio: cash plus an insertion-ordered list of holdings.

    Invariant: ``total_value == cash_balance + sum(h.market_value)``
    after every completed mutation. Mutators must call ``recalculate``
    before the portfolio is persisted.
    """

    portfolio_id: str
    client_id: str
    account_number: str
    currency: str = "USD"
    client_name: str | None = None
    cash_balance: Decimal = ZERO
    total_value: Decimal = ZERO
    status: PortfolioStatus = PortfolioStatus.ACTIVE
    holdings: list[Holding] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.recalculate()

    @property
    def holdings_value(self) -> Decimal:
        return sum((h.market_value for h in self.holdings), ZERO)

    def find_holding(self, symbol: str) -> Holding | None:
        """Holding for ``symbol`` or None."""
        for holding in self.holdings:
            if holding.symbol == symbol:
                return holding
        return None

    def remove_holding(self, symbol: str) -> bool:
        """Drop the holding for ``symbol``; returns whether one was removed."""
        before = len(self.holdings)
        self.holdings = [h for h in self.holdings if h.symbol != symbol]
        return len(self.holdings) != before

    def recalculate(self) -> None:
        """Re-derive every holding, then the portfolio total value."""
        for holding in self.holdings:
            holding.recalculate()
        self.total_value = self.cash_balance + self.holdings_value
