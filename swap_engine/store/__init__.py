"""Order store package: durable orders + execution attempts (in-memory or PostgreSQL)."""

from swap_engine.store.base import OrderStore
from swap_engine.store.memory_store import InMemoryOrderStore


# Lazy import so the package loads without psycopg2 (e.g. tests on the in-memory store)
def __getattr__(name: str):
    if name == "PostgreSQLOrderStore":
        from swap_engine.store.postgres_store import PostgreSQLOrderStore
        return PostgreSQLOrderStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def build_store(store_config: dict) -> OrderStore:
    """Build the store named by store_config['backend'] (memory | postgres)."""
    backend = (store_config.get("backend") or "memory").lower()
    if backend == "postgres":
        from swap_engine.store.postgres_store import PostgreSQLOrderStore
        return PostgreSQLOrderStore(store_config)
    if backend != "memory":
        raise ValueError(f"unknown store backend: {backend}")
    return InMemoryOrderStore()


__all__ = [
    "OrderStore",
    "InMemoryOrderStore",
    "PostgreSQLOrderStore",
    "build_store",
]
