"""Helpers shared by all domain models."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque identifier for entities and events."""
    return uuid.uuid4().hex


def to_decimal(value: Any) -> Decimal:
    """Convert ints, strings and Decimals to ``Decimal`` without float rounding.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.

    Raises
    ------
    ValueError
        If the value cannot be interpreted as a finite decimal.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a decimal: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as e:
            raise ValueError(f"Not a decimal: {value!r}") from e
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"Not a decimal: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a finite decimal: {value!r}")
    return result
