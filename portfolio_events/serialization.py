"""Shared serialization utilities for the event wire format."""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def serialize_value(value: Any) -> Any:
    """Serialize a value for JSON output.

    Decimals become strings so no precision is lost on the wire.
    """
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def encode_json(data: dict) -> bytes:
    """Encode a wire dict as compact UTF-8 JSON."""
    return json.dumps(
        serialize_value(data), ensure_ascii=False, separators=(",", ":")
    ).encode("utf-8")


def decode_json(payload: bytes | str) -> dict:
    """Decode a UTF-8 JSON object.

    Raises
    ------
    ValueError
        If the payload is not valid JSON or not a JSON object.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
