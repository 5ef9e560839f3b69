"""Process bootstrap and order submission."""

from swap_engine.app.engine import SwapEngine, run_engine

__all__ = ["SwapEngine", "run_engine"]
