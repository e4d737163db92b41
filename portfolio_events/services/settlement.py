"""Settlement step deciding whether a PROCESSING transaction completes or fails."""

import logging
import random
import time
from typing import Protocol

from portfolio_events.config import SettlementConfig
from portfolio_events.exceptions import SettlementFailure
from portfolio_events.models import Transaction

logger = logging.getLogger(__name__)


class Settlement(Protocol):
    """Bounded operation with a success/failure outcome only.

    ``settle`` returns normally on success and raises on failure. It must
    not change any state; the state machine applies the outcome.
    """

    def settle(self, transaction: Transaction) -> None:
        ...


class SimulatedSettlement:
    """Stand-in for a trading-system integration.

    Waits ``latency_seconds`` and then fails with probability
    ``failure_rate``.
    """

    def __init__(
        self,
        latency_seconds: float = 0.1,
        failure_rate: float = 0.0,
        seed: int | None = None,
    ) -> None:
        self.latency_seconds = latency_seconds
        self.failure_rate = failure_rate
        self._random = random.Random(seed)

    @classmethod
    def from_config(cls, config: SettlementConfig) -> "SimulatedSettlement":
        return cls(latency_seconds=config.latency_seconds, failure_rate=config.failure_rate)

    def settle(self, transaction: Transaction) -> None:
        if self.latency_seconds > 0:
            time.sleep(self.latency_seconds)
        if self.failure_rate > 0 and self._random.random() < self.failure_rate:
            raise SettlementFailure(
                f"Settlement rejected transaction {transaction.transaction_id}"
            )
        logger.debug("Settled transaction %s", transaction.transaction_id)
