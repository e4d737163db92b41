"""Event-driven portfolio and transaction management."""

__version__ = "0.1.0"
