"""Logging setup for portfolio-events services and consumers."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

# Record attributes copied into JSON output when a call passes them via ``extra``.
CONTEXT_FIELDS = (
    "event_id",
    "event_type",
    "transaction_id",
    "portfolio_id",
    "topic",
    "partition",
    "offset",
    "consumer_group",
)

STANDARD_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Configure the root logger for a portfolio-events process.

    Parameters
    ----------
    level : str
        Log level name; unknown names fall back to INFO.
    format_type : str
        "standard" for human-readable lines, "json" for one JSON object
        per line with event context fields.
    stream : TextIO | None
        Destination, stdout by default.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=STANDARD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("portfolio_events").setLevel(log_level)

    # librdkafka and Faker are chatty below WARNING
    logging.getLogger("confluent_kafka").setLevel(logging.WARNING)
    logging.getLogger("faker").setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including any event context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def delivery_context(delivery: Any, group: str | None = None) -> dict[str, Any]:
    """``extra`` mapping describing where a consumed record came from."""
    context = {
        "topic": delivery.topic,
        "partition": delivery.partition,
        "offset": delivery.offset,
    }
    if group is not None:
        context["consumer_group"] = group
    return context


def event_context(envelope: Any) -> dict[str, Any]:
    """``extra`` mapping identifying an event envelope."""
    context = {
        "event_id": envelope.event_id,
        "event_type": envelope.event_type.value,
        "portfolio_id": envelope.portfolio_id,
    }
    transaction_id = getattr(envelope, "transaction_id", None)
    if transaction_id is not None:
        context["transaction_id"] = transaction_id
    return context
