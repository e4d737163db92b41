"""Portfolio request generator."""

import random
from decimal import Decimal
from typing import Iterator

from portfolio_events.generators.base import BaseGenerator
from portfolio_events.models import PortfolioRequest


class PortfolioRequestGenerator(BaseGenerator):
    """Generate requests to open client portfolios."""

    CURRENCIES = ["USD", "EUR", "GBP"]
    CURRENCY_WEIGHTS = [0.80, 0.12, 0.08]

    def generate(self, cash_balance: Decimal | None = None) -> PortfolioRequest:
        """Generate a single portfolio request.

        Parameters
        ----------
        cash_balance : Decimal | None
            Opening cash; random between 1,000 and 250,000 if not given.

        Returns
        -------
        PortfolioRequest
            Generated request with a unique account number.
        """
        if cash_balance is None:
            cash_balance = self.money(1_000, 250_000)

        return PortfolioRequest(
            client_id=f"CLIENT-{self.fake.unique.random_number(digits=6, fix_len=True)}",
            client_name=self.fake.name(),
            account_number=f"ACC-{self.fake.unique.random_number(digits=8, fix_len=True)}",
            currency=random.choices(self.CURRENCIES, weights=self.CURRENCY_WEIGHTS, k=1)[0],
            cash_balance=cash_balance,
        )

    def generate_batch(self, count: int) -> Iterator[PortfolioRequest]:
        """Generate ``count`` portfolio requests."""
        for _ in range(count):
            yield self.generate()
