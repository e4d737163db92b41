"""Inbound request models accepted by the services."""

from dataclasses import dataclass
from decimal import Decimal

from portfolio_events.models.base import ZERO
from portfolio_events.models.enums import PortfolioStatus, TransactionType


@dataclass
class TransactionRequest:
    """Request to create (and immediately process) a transaction."""

    portfolio_id: str
    account_number: str
    transaction_type: TransactionType | str
    symbol: str
    quantity: Decimal | int | str
    price: Decimal | int | str
    commission: Decimal | int | str | None = None
    currency: str = "USD"
    notes: str = ""
    asset_name: str | None = None


@dataclass
class PortfolioRequest:
    """Request to open a portfolio."""

    client_id: str
    account_number: str
    client_name: str | None = None
    currency: str = "USD"
    cash_balance: Decimal = ZERO


@dataclass
class PortfolioUpdate:
    """Partial update of portfolio attributes (None leaves a field unchanged)."""

    client_name: str | None = None
    currency: str | None = None
    cash_balance: Decimal | None = None
    status: PortfolioStatus | None = None


@dataclass
class HoldingRequest:
    """Request to add a holding directly."""

    symbol: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    name: str | None = None
    asset_type: str = "STOCK"


@dataclass
class HoldingUpdate:
    """Partial update of a holding (None leaves a field unchanged)."""

    quantity: Decimal | None = None
    average_cost: Decimal | None = None
    current_price: Decimal | None = None
    name: str | None = None
