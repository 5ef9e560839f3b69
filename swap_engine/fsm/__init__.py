"""Order state machine: per-state handlers and the orchestrator that dispatches to them."""

from swap_engine.fsm.handlers import OrderStateHandlers
from swap_engine.fsm.orchestrator import RETRY_LIMIT_REASON, OrderOrchestrator

__all__ = ["OrderStateHandlers", "OrderOrchestrator", "RETRY_LIMIT_REASON"]
