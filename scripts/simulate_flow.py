#!/usr/bin/env python3
"""Run an end-to-end portfolio event flow.

This script builds the full application, opens generated portfolios,
funds them and streams generated transactions through the state
machine. It then waits for the portfolio projection to catch up and
prints a summary per portfolio:
- Transactions by final status
- Cash balance, holdings and total value
- Publisher and consumer statistics

Backends:
- memory (default): in-process broker, no infrastructure needed.
- kafka: confluent-kafka against --kafka-bootstrap.
"""

import argparse
import logging
import random
import sys
import time
from collections import Counter
from decimal import Decimal
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from portfolio_events.app import PortfolioEventsApp
from portfolio_events.broker import InMemoryBroker
from portfolio_events.config import AppConfig, KafkaConfig, SettlementConfig
from portfolio_events.exceptions import PortfolioEventsError, SettlementFailure
from portfolio_events.generators import PortfolioRequestGenerator, TransactionRequestGenerator
from portfolio_events.logging import setup_logging
from portfolio_events.models import Portfolio, TransactionRequest, TransactionType

logger = logging.getLogger(__name__)


def fund_portfolio(app: PortfolioEventsApp, portfolio: Portfolio, amount: Decimal) -> None:
    """Deposit ``amount`` into ``portfolio`` through the transaction flow."""
    app.transactions.create(
        TransactionRequest(
            portfolio_id=portfolio.portfolio_id,
            account_number=portfolio.account_number,
            transaction_type=TransactionType.DEPOSIT,
            symbol="",
            quantity=Decimal("1"),
            price=amount,
            notes="Initial funding",
        )
    )


def run_transactions(
    app: PortfolioEventsApp,
    portfolio: Portfolio,
    generator: TransactionRequestGenerator,
    count: int,
) -> Counter:
    """Submit ``count`` generated transactions and tally final statuses."""
    statuses: Counter = Counter()
    for request in generator.generate_batch(portfolio.portfolio_id, portfolio.account_number, count):
        try:
            transaction = app.transactions.create(request)
        except SettlementFailure as e:
            logger.warning("Settlement failed: %s", e)
            statuses["FAILED"] += 1
            continue
        except PortfolioEventsError as e:
            logger.warning("Rejected request: %s", e)
            statuses["REJECTED"] += 1
            continue
        statuses[transaction.status.value] += 1
    return statuses


def wait_for_projection(app: PortfolioEventsApp, timeout: float) -> bool:
    """Wait until the projection has committed every transaction event."""
    if not app.publisher.flush(timeout):
        return False
    if not isinstance(app.broker, InMemoryBroker):
        time.sleep(min(timeout, 5.0))
        return True
    broker = app.broker
    topics = app.config.topics
    return broker.wait_for(
        lambda: broker.lag(topics.transaction_events, topics.projection_group) == 0,
        timeout=timeout,
    )


def print_summary(
    app: PortfolioEventsApp,
    portfolios: list[Portfolio],
    statuses: Counter,
    elapsed: float,
) -> None:
    """Print the final state of every simulated portfolio."""
    print()
    print("=" * 60)
    print("Simulation Summary")
    print("=" * 60)
    for status, count in sorted(statuses.items()):
        print(f"  {status:<12} {count:>6,}")
    print("-" * 60)

    for portfolio in portfolios:
        view = app.portfolios.get_portfolio(portfolio.portfolio_id)
        print(f"  {view.account_number} ({view.client_name})")
        print(f"    cash:  {view.cash_balance:>14,.2f} {view.currency}")
        for holding in view.holdings:
            print(
                f"    {holding.symbol:<6} {holding.quantity:>8} @ {holding.average_cost:>10,.2f}"
                f"  mv {holding.market_value:>12,.2f}"
            )
        print(f"    total: {view.total_value:>14,.2f} {view.currency}")

    stats = app.publisher.stats
    print("-" * 60)
    print(
        f"  Events: enqueued={stats.enqueued:,} delivered={stats.delivered:,} "
        f"failed={stats.failed:,} retried={stats.retried:,}"
    )
    for runner in app.runners:
        print(
            f"  {runner.group}/{runner.topic}: handled={runner.stats.handled:,} "
            f"dead_lettered={runner.stats.dead_lettered:,}"
        )
    print(f"  Time: {elapsed:.2f}s")
    print("=" * 60)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Simulate the portfolio event flow")
    parser.add_argument(
        "--portfolios",
        type=int,
        default=3,
        help="Number of portfolios to open (default: 3)",
    )
    parser.add_argument(
        "--transactions",
        type=int,
        default=20,
        help="Transactions per portfolio (default: 20)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
    )
    parser.add_argument(
        "--backend",
        choices=["memory", "kafka"],
        default="memory",
        help="Message broker backend (default: memory)",
    )
    parser.add_argument(
        "--kafka-bootstrap",
        default="localhost:9092",
        help="Kafka bootstrap servers (default: localhost:9092)",
    )
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=0.0,
        help="Probability that settlement fails (default: 0.0)",
    )
    parser.add_argument(
        "--latency",
        type=float,
        default=0.01,
        help="Simulated settlement latency in seconds (default: 0.01)",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=30.0,
        help="Seconds to wait for consumers to catch up (default: 30)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
    )
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
    )

    args = parser.parse_args()

    if not 0.0 <= args.failure_rate <= 1.0:
        parser.error("--failure-rate must be between 0 and 1")

    setup_logging(args.log_level, args.log_format)
    random.seed(args.seed)

    config = AppConfig(
        broker_backend=args.backend,
        kafka=KafkaConfig(bootstrap_servers=args.kafka_bootstrap),
        settlement=SettlementConfig(latency_seconds=args.latency, failure_rate=args.failure_rate),
        log_level=args.log_level,
        log_format=args.log_format,
    )

    logger.info("=" * 60)
    logger.info("Portfolio Events - Flow Simulation")
    logger.info("=" * 60)
    logger.info("Backend: %s", args.backend)
    logger.info("Portfolios: %d", args.portfolios)
    logger.info("Transactions per portfolio: %d", args.transactions)
    logger.info("Settlement failure rate: %.2f", args.failure_rate)
    logger.info("Seed: %d", args.seed)
    logger.info("=" * 60)

    app = PortfolioEventsApp.build(config)
    app.start()
    start = time.perf_counter()

    portfolio_generator = PortfolioRequestGenerator(seed=args.seed)
    transaction_generator = TransactionRequestGenerator(seed=args.seed)
    portfolios: list[Portfolio] = []
    statuses: Counter = Counter()

    try:
        for request in portfolio_generator.generate_batch(args.portfolios):
            portfolio = app.portfolios.create_portfolio(request)
            portfolios.append(portfolio)
            fund_portfolio(app, portfolio, Decimal("500000"))
            statuses.update(
                run_transactions(app, portfolio, transaction_generator, args.transactions)
            )

        if not wait_for_projection(app, args.wait):
            logger.warning("Projection did not catch up within %.0fs", args.wait)

        print_summary(app, portfolios, statuses, time.perf_counter() - start)
    finally:
        app.stop()


if __name__ == "__main__":
    main()
