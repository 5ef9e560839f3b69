"""Order lifecycle state table: PENDING -> ROUTING -> BUILDING -> SUBMITTED -> CONFIRMED, FAILED from any non-terminal.

This table is the single source of truth for the orchestrator dispatch and for validity checks.
The store does not validate moves on its own: the handlers take forward targets from get_next_state
and refuse any pair can_transition rejects before asking the store for it.
"""

import enum
import logging
from typing import Optional, Union

logger = logging.getLogger(__name__)


class OrderStatus(str, enum.Enum):
    """Persisted order status. Values are the strings stored in orders.status."""

    PENDING = "pending"
    ROUTING = "routing"
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# Forward flow, totally ordered. FAILED is not part of the flow; it is a sideways exit.
ORDER_FLOW: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.ROUTING,
    OrderStatus.BUILDING,
    OrderStatus.SUBMITTED,
    OrderStatus.CONFIRMED,
)

TERMINAL_STATES: frozenset[OrderStatus] = frozenset({OrderStatus.CONFIRMED, OrderStatus.FAILED})


def parse_status(value: Union[str, OrderStatus, None]) -> Optional[OrderStatus]:
    """Return OrderStatus for a stored value, or None when the value is not a known status."""
    if value is None:
        return None
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        return None


def is_terminal_state(status: Union[str, OrderStatus, None]) -> bool:
    """True for CONFIRMED and FAILED."""
    return parse_status(status) in TERMINAL_STATES


def get_next_state(current: Union[str, OrderStatus, None]) -> Optional[OrderStatus]:
    """Successor of current in ORDER_FLOW; None when current is terminal or malformed."""
    status = parse_status(current)
    if status is None or status not in ORDER_FLOW:
        return None
    index = ORDER_FLOW.index(status)
    if index == len(ORDER_FLOW) - 1:
        return None
    return ORDER_FLOW[index + 1]


def can_transition(from_status: Union[str, OrderStatus, None], to_status: Union[str, OrderStatus, None]) -> bool:
    """
    Valid moves: one step forward along ORDER_FLOW, or any non-terminal status -> FAILED.
    Status never regresses and terminal states have no outgoing transitions.
    """
    src = parse_status(from_status)
    dst = parse_status(to_status)
    if src is None or dst is None or src in TERMINAL_STATES:
        return False
    if dst == OrderStatus.FAILED:
        return True
    return get_next_state(src) == dst
