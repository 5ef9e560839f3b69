"""Swap order execution engine: durable order state machine with best-execution routing."""

__version__ = "0.1.0"
