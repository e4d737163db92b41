"""Shared pieces of the request generators: seeding, instruments and money."""

from __future__ import annotations

import random
from abc import ABC
from decimal import Decimal

from faker import Faker

# Instruments the simulation trades, with a plausible price band for each.
STOCKS = [
    {"symbol": "AAPL", "name": "Apple Inc.", "price_range": (150, 230)},
    {"symbol": "MSFT", "name": "Microsoft Corp.", "price_range": (300, 450)},
    {"symbol": "GOOGL", "name": "Alphabet Inc.", "price_range": (120, 190)},
    {"symbol": "AMZN", "name": "Amazon.com Inc.", "price_range": (130, 200)},
    {"symbol": "NVDA", "name": "NVIDIA Corp.", "price_range": (400, 900)},
    {"symbol": "JPM", "name": "JPMorgan Chase & Co.", "price_range": (140, 210)},
    {"symbol": "JNJ", "name": "Johnson & Johnson", "price_range": (145, 170)},
    {"symbol": "XOM", "name": "Exxon Mobil Corp.", "price_range": (95, 125)},
    {"symbol": "KO", "name": "Coca-Cola Co.", "price_range": (55, 65)},
    {"symbol": "TSLA", "name": "Tesla Inc.", "price_range": (150, 300)},
]

STOCKS_BY_SYMBOL = {stock["symbol"]: stock for stock in STOCKS}


class BaseGenerator(ABC):
    """Base class for the portfolio and transaction request generators.

    Owns the Faker instance and seeding, so one seed reproduces a whole
    simulated flow, and the helpers both generators draw amounts and
    instruments from.

    Parameters
    ----------
    seed : int | None
        Random seed for reproducibility.
    locale : str
        Faker locale (default ``en_US``).
    """

    def __init__(self, seed: int | None = None, locale: str = "en_US") -> None:
        self.fake = Faker(locale)
        if seed is not None:
            self.fake.seed_instance(seed)
            random.seed(seed)

    @staticmethod
    def money(low: float, high: float) -> Decimal:
        """Uniform random amount in ``[low, high]`` with cent precision."""
        return Decimal(str(round(random.uniform(low, high), 2)))

    @staticmethod
    def stock(symbol: str | None = None) -> dict:
        """The instrument for ``symbol``, or a random one."""
        if symbol is None:
            return random.choice(STOCKS)
        return STOCKS_BY_SYMBOL[symbol]

    def quote(self, stock: dict) -> Decimal:
        """A price inside ``stock``'s band."""
        return self.money(*stock["price_range"])
