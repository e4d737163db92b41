"""Transaction model: the append-only audit record of one trade or cash movement."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from portfolio_events.exceptions import InvalidStateError, ValidationError
from portfolio_events.models.base import ZERO, utcnow
from portfolio_events.models.enums import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    TransactionStatus,
    TransactionType,
)


def validate_amounts(quantity: Decimal, price: Decimal, commission: Decimal) -> None:
    """Check the numeric invariants of a transaction.

    Raises
    ------
    ValidationError
        If quantity or price is not positive or commission is negative.
    """
    if quantity <= ZERO:
        raise ValidationError(f"Quantity must be positive, got {quantity}")
    if price <= ZERO:
        raise ValidationError(f"Price must be positive, got {price}")
    if commission < ZERO:
        raise ValidationError(f"Commission must not be negative, got {commission}")


@dataclass
class Transaction:
    """Portfolio transaction.

    ``amount`` is the gross value (quantity * price) and ``total_amount``
    adds the commission. Both are derived and kept exact in ``Decimal``.
    """

    transaction_id: str
    portfolio_id: str
    account_number: str
    transaction_type: TransactionType
    symbol: str
    quantity: Decimal
    price: Decimal
    commission: Decimal = ZERO
    currency: str = "USD"
    status: TransactionStatus = TransactionStatus.PENDING
    notes: str = ""
    asset_name: str | None = None
    amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    transaction_date: datetime = field(default_factory=utcnow)
    processed_date: datetime | None = None  # set only on COMPLETED

    def __post_init__(self) -> None:
        self.recalculate_amounts()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def recalculate_amounts(self) -> None:
        """Recompute gross and total amounts."""
        self.amount = self.quantity * self.price
        self.total_amount = self.amount + self.commission

    def update_amounts(
        self,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
        commission: Decimal | None = None,
    ) -> None:
        """Change quantity, price or commission before the transaction is terminal."""
        if self.is_terminal:
            raise InvalidStateError(
                f"Transaction {self.transaction_id} is {self.status.value} and cannot be amended"
            )
        new_quantity = self.quantity if quantity is None else quantity
        new_price = self.price if price is None else price
        new_commission = self.commission if commission is None else commission
        validate_amounts(new_quantity, new_price, new_commission)

        self.quantity = new_quantity
        self.price = new_price
        self.commission = new_commission
        self.recalculate_amounts()

    def transition_to(self, status: TransactionStatus) -> None:
        """Move to ``status`` if the edge is allowed."""
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateError(
                f"Transaction {self.transaction_id} cannot move from "
                f"{self.status.value} to {status.value}"
            )
        self.status = status
        if status == TransactionStatus.COMPLETED:
            self.processed_date = utcnow()
