"""Transaction request generator for US-listed equities."""

import random
from decimal import Decimal
from typing import Iterator

from portfolio_events.generators.base import BaseGenerator
from portfolio_events.models import TransactionRequest, TransactionType


class TransactionRequestGenerator(BaseGenerator):
    """Generate synthetic transaction requests against one portfolio.

    Generated sequences are consistent: a SELL only ever targets a
    symbol bought earlier in the same sequence, for at most the quantity
    bought so far.
    """

    TRANSACTION_TYPES = list(TransactionType)
    # BUY, SELL, DIVIDEND, DEPOSIT, WITHDRAWAL
    TYPE_WEIGHTS = [0.50, 0.20, 0.10, 0.12, 0.08]

    COMMISSION = Decimal("9.99")

    def generate(
        self,
        portfolio_id: str,
        account_number: str,
        transaction_type: TransactionType | None = None,
        holdings: dict[str, Decimal] | None = None,
    ) -> TransactionRequest:
        """Generate a single transaction request.

        Parameters
        ----------
        portfolio_id : str
            Target portfolio.
        account_number : str
            Account of the portfolio.
        transaction_type : TransactionType | None
            Random if not specified.
        holdings : dict[str, Decimal] | None
            Quantities currently held; a SELL picks from these and falls
            back to a BUY when nothing is held.

        Returns
        -------
        TransactionRequest
            Generated request.
        """
        holdings = holdings or {}
        if transaction_type is None:
            transaction_type = random.choices(
                self.TRANSACTION_TYPES, weights=self.TYPE_WEIGHTS, k=1
            )[0]
        if transaction_type == TransactionType.SELL and not any(holdings.values()):
            transaction_type = TransactionType.BUY

        if transaction_type in (TransactionType.DEPOSIT, TransactionType.WITHDRAWAL):
            amount = self.money(500, 20_000)
            return TransactionRequest(
                portfolio_id=portfolio_id,
                account_number=account_number,
                transaction_type=transaction_type,
                symbol="",
                quantity=Decimal("1"),
                price=amount,
                commission=Decimal("0"),
                notes=self.fake.sentence(nb_words=4),
            )

        if transaction_type == TransactionType.SELL:
            symbol = random.choice([s for s, q in holdings.items() if q > 0])
            stock = self.stock(symbol)
            quantity = Decimal(random.randint(1, int(holdings[symbol])))
        else:
            stock = self.stock()
            quantity = Decimal(random.randint(1, 50) * 5)

        price = self.quote(stock)

        if transaction_type == TransactionType.DIVIDEND:
            # Per-share payout rather than a trade price
            price = (price * Decimal("0.005")).quantize(Decimal("0.01"))
            commission = Decimal("0")
        else:
            commission = self.COMMISSION

        return TransactionRequest(
            portfolio_id=portfolio_id,
            account_number=account_number,
            transaction_type=transaction_type,
            symbol=stock["symbol"],
            quantity=quantity,
            price=price,
            commission=commission,
            asset_name=stock["name"],
        )

    def generate_batch(
        self, portfolio_id: str, account_number: str, count: int
    ) -> Iterator[TransactionRequest]:
        """Generate a consistent sequence of ``count`` requests.

        Yields
        ------
        TransactionRequest
            Generated requests, SELLs never exceeding earlier BUYs.
        """
        holdings: dict[str, Decimal] = {}
        for _ in range(count):
            request = self.generate(portfolio_id, account_number, holdings=holdings)
            if request.transaction_type == TransactionType.BUY:
                holdings[request.symbol] = holdings.get(request.symbol, Decimal("0")) + Decimal(
                    request.quantity
                )
            elif request.transaction_type == TransactionType.SELL:
                holdings[request.symbol] -= Decimal(request.quantity)
            yield request
