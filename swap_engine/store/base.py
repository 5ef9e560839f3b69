"""OrderStore abstract interface: durable orders, execution attempts, atomic conditional transition.

See scripts/init_db.py for the PostgreSQL schema.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from swap_engine.domain.order_state import OrderStatus
from swap_engine.domain.types import ExecutionAttempt, Order, OrderPayload, RoutingDecision


class OrderStore(ABC):
    """Abstract store for order aggregates and their execution attempts.

    conditional_transition is the only concurrency control in the engine: it succeeds only if the
    stored status still equals from_status, and it returns False (never raises) when that race is lost.
    Attempt field writers are write-once and return False when the field is already set.
    """

    @abstractmethod
    async def create_order(self, order_id: str, payload: OrderPayload) -> Order:
        """Insert a new order in PENDING."""
        ...

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    async def conditional_transition(self, order_id: str, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        """Atomically set status=to_status and refresh updated_at iff status == from_status."""
        ...

    @abstractmethod
    async def create_execution_attempt(self, order_id: str, attempt_number: int) -> Optional[ExecutionAttempt]:
        """Insert attempt attempt_number for order_id. None if that number already exists (duplicate worker)."""
        ...

    @abstractmethod
    async def get_latest_execution_attempt(self, order_id: str) -> Optional[ExecutionAttempt]:
        ...

    @abstractmethod
    async def count_execution_attempts(self, order_id: str) -> int:
        ...

    @abstractmethod
    async def update_execution_routing(self, attempt_id: str, decision: RoutingDecision) -> bool:
        """Set chosen_venue + routing_decision once."""
        ...

    @abstractmethod
    async def update_execution_success(self, attempt_id: str, tx_hash: str, execution_price: float) -> bool:
        """Set tx_hash + execution_price once."""
        ...

    @abstractmethod
    async def update_execution_failure(self, attempt_id: str, failure_reason: str) -> bool:
        """Set failure_reason once."""
        ...

    # Audit / history queries used by the gateway.

    @abstractmethod
    async def get_order_executions(self, order_id: str) -> List[ExecutionAttempt]:
        """All attempts for order_id ordered by attempt_number."""
        ...

    @abstractmethod
    async def get_recent_orders(self, limit: int = 50) -> List[Order]:
        ...

    async def check_connection(self) -> bool:
        return True

    async def close(self) -> None:
        return
