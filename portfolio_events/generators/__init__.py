"""Faker-based request generators for simulations and load runs."""

from portfolio_events.generators.base import STOCKS, BaseGenerator
from portfolio_events.generators.portfolio import PortfolioRequestGenerator
from portfolio_events.generators.transaction import TransactionRequestGenerator

__all__ = ["STOCKS", "BaseGenerator", "PortfolioRequestGenerator", "TransactionRequestGenerator"]
