"""Order domain: lifecycle state table and data model."""

from swap_engine.domain.order_state import (
    ORDER_FLOW,
    TERMINAL_STATES,
    OrderStatus,
    can_transition,
    get_next_state,
    is_terminal_state,
    parse_status,
)
from swap_engine.domain.types import (
    ExecutionAttempt,
    Order,
    OrderEvent,
    OrderPayload,
    Quote,
    RoutingDecision,
    SwapResult,
)

__all__ = [
    "ORDER_FLOW",
    "TERMINAL_STATES",
    "OrderStatus",
    "can_transition",
    "get_next_state",
    "is_terminal_state",
    "parse_status",
    "ExecutionAttempt",
    "Order",
    "OrderEvent",
    "OrderPayload",
    "Quote",
    "RoutingDecision",
    "SwapResult",
]
