"""Core: error kinds, structured logging, metrics."""
