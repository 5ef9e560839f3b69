"""In-process OrderStore. A single asyncio.Lock makes every read-check-write atomic."""

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from swap_engine.domain.order_state import OrderStatus, parse_status
from swap_engine.domain.types import ExecutionAttempt, Order, OrderPayload, RoutingDecision
from swap_engine.store.base import OrderStore

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryOrderStore(OrderStore):
    """Orders and attempts in dicts. Returned objects are copies so callers never mutate stored rows."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._orders: Dict[str, Order] = {}
        self._attempts: Dict[str, List[ExecutionAttempt]] = {}

    async def create_order(self, order_id: str, payload: OrderPayload) -> Order:
        async with self._lock:
            if order_id in self._orders:
                raise ValueError(f"order {order_id} already exists")
            now = _now()
            order = Order(id=order_id, status=OrderStatus.PENDING, payload=payload, created_at=now, updated_at=now)
            self._orders[order_id] = order
            self._attempts[order_id] = []
            return copy.deepcopy(order)

    async def get_order(self, order_id: str) -> Optional[Order]:
        async with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order is not None else None

    async def conditional_transition(self, order_id: str, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None or parse_status(order.status) != parse_status(from_status):
                return False
            order.status = to_status
            order.updated_at = _now()
            return True

    async def create_execution_attempt(self, order_id: str, attempt_number: int) -> Optional[ExecutionAttempt]:
        async with self._lock:
            attempts = self._attempts.setdefault(order_id, [])
            if any(a.attempt_number == attempt_number for a in attempts):
                return None
            attempt = ExecutionAttempt(
                id=str(uuid.uuid4()),
                order_id=order_id,
                attempt_number=attempt_number,
                created_at=_now(),
            )
            attempts.append(attempt)
            attempts.sort(key=lambda a: a.attempt_number)
            return copy.deepcopy(attempt)

    async def get_latest_execution_attempt(self, order_id: str) -> Optional[ExecutionAttempt]:
        async with self._lock:
            attempts = self._attempts.get(order_id) or []
            return copy.deepcopy(attempts[-1]) if attempts else None

    async def count_execution_attempts(self, order_id: str) -> int:
        async with self._lock:
            return len(self._attempts.get(order_id) or [])

    def _find_attempt(self, attempt_id: str) -> Optional[ExecutionAttempt]:
        for attempts in self._attempts.values():
            for a in attempts:
                if a.id == attempt_id:
                    return a
        return None

    async def update_execution_routing(self, attempt_id: str, decision: RoutingDecision) -> bool:
        async with self._lock:
            attempt = self._find_attempt(attempt_id)
            if attempt is None or attempt.chosen_venue is not None:
                return False
            attempt.chosen_venue = decision.venue
            attempt.routing_decision = decision
            return True

    async def update_execution_success(self, attempt_id: str, tx_hash: str, execution_price: float) -> bool:
        async with self._lock:
            attempt = self._find_attempt(attempt_id)
            if attempt is None or attempt.tx_hash is not None:
                return False
            attempt.tx_hash = tx_hash
            attempt.execution_price = execution_price
            return True

    async def update_execution_failure(self, attempt_id: str, failure_reason: str) -> bool:
        async with self._lock:
            attempt = self._find_attempt(attempt_id)
            if attempt is None or attempt.failure_reason is not None:
                return False
            attempt.failure_reason = failure_reason
            return True

    async def get_order_executions(self, order_id: str) -> List[ExecutionAttempt]:
        async with self._lock:
            return copy.deepcopy(self._attempts.get(order_id) or [])

    async def get_recent_orders(self, limit: int = 50) -> List[Order]:
        async with self._lock:
            orders = sorted(self._orders.values(), key=lambda o: o.created_at or _now(), reverse=True)
            return copy.deepcopy(orders[:limit])
