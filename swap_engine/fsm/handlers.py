"""Per-state handlers for the order lifecycle.

Each handler reads persisted state first, performs at most one external effect, then asks the store
for a conditional transition from the status it observed. A False transition means another worker
already advanced the order: the handler stops without side effects and returns None.

Handlers return the status they moved the order to, or None when nothing was advanced.
"""

import logging
from typing import Optional

from swap_engine.core.errors import ExecutionError, fatal_error
from swap_engine.core.logging_utils import log_order_transition, log_routing_decision
from swap_engine.core.metrics import Metrics, get_metrics
from swap_engine.domain.order_state import (
    ORDER_FLOW,
    OrderStatus,
    can_transition,
    get_next_state,
    is_terminal_state,
    parse_status,
)
from swap_engine.domain.types import ExecutionAttempt, Order, SwapResult
from swap_engine.events.notifier import LifecycleNotifier
from swap_engine.routing.router import VenueRouter
from swap_engine.store.base import OrderStore

logger = logging.getLogger(__name__)


class OrderStateHandlers:
    """Business logic for pending, routing, building, submitted and the shared fail routine."""

    def __init__(
        self,
        store: OrderStore,
        notifier: LifecycleNotifier,
        router: VenueRouter,
        metrics: Optional[Metrics] = None,
    ):
        self._store = store
        self._notifier = notifier
        self._router = router
        self._metrics = metrics or get_metrics()

    async def _transition(self, order_id: str, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        if not can_transition(from_status, to_status):
            logger.error("Refusing transition for order %s: %s -> %s is not a valid move", order_id, from_status.value, to_status.value)
            return False
        ok = await self._store.conditional_transition(order_id, from_status, to_status)
        log_order_transition(order_id, from_status, to_status, ok)
        if ok:
            self._metrics.inc_transition(to_status.value)
        else:
            self._metrics.inc_race_loss()
        return ok

    async def _advance(self, order_id: str, from_status: OrderStatus) -> Optional[OrderStatus]:
        """Move one step forward along the flow; None when another worker got there first."""
        to_status = get_next_state(from_status)
        if to_status is None or not await self._transition(order_id, from_status, to_status):
            return None
        return to_status

    async def _require_attempt(self, order: Order) -> ExecutionAttempt:
        attempt = await self._store.get_latest_execution_attempt(order.id)
        if attempt is None:
            raise fatal_error(f"No execution attempt found for order {order.id}")
        return attempt

    async def handle_pending(self, order: Order) -> Optional[OrderStatus]:
        """pending -> routing. Opens the execution attempt unless one already exists."""
        # A pending order never has a finished attempt, so any recorded attempt is the one to reuse.
        latest = await self._store.get_latest_execution_attempt(order.id)
        if latest is None:
            created = await self._store.create_execution_attempt(order.id, 1)
            if created is None:
                logger.info("Execution attempt for order %s already created by another worker", order.id)
            else:
                logger.info("Created execution attempt %d for order %s", created.attempt_number, order.id)
        target = await self._advance(order.id, OrderStatus.PENDING)
        if target is None:
            return None
        self._notifier.publish(order.id, target)
        return target

    async def handle_routing(self, order: Order) -> Optional[OrderStatus]:
        """routing -> building. Quotes every venue, records the decision once, then advances."""
        attempt = await self._require_attempt(order)
        decision = attempt.routing_decision
        if decision is None:
            payload = order.payload
            decision = await self._router.route(payload.source_asset, payload.dest_asset, payload.amount)
            log_routing_decision(order.id, decision)
            if not await self._store.update_execution_routing(attempt.id, decision):
                # Another worker recorded a decision first; theirs stands.
                persisted = await self._require_attempt(order)
                decision = persisted.routing_decision or decision
        else:
            logger.info("Order %s reusing recorded routing decision (%s)", order.id, decision.venue)

        target = await self._advance(order.id, OrderStatus.ROUTING)
        if target is None:
            return None
        self._notifier.publish(order.id, target, {"routing": decision.to_dict()})
        return target

    async def handle_building(self, order: Order) -> Optional[OrderStatus]:
        """building -> submitted -> confirmed. Executes the swap on the chosen venue."""
        attempt = await self._require_attempt(order)
        if not attempt.chosen_venue:
            raise fatal_error(f"No routing decision found for order {order.id}")

        if attempt.tx_hash:
            logger.warning("Order %s already has tx %s recorded; not executing the swap again", order.id, attempt.tx_hash)
            result = SwapResult(tx_hash=attempt.tx_hash, executed_price=attempt.execution_price)
        else:
            venue = self._router.get_venue(attempt.chosen_venue)
            if venue is None:
                raise fatal_error(f"Unknown venue {attempt.chosen_venue} for order {order.id}")
            payload = order.payload
            try:
                result = await venue.execute_swap(payload.source_asset, payload.dest_asset, payload.amount, payload.slippage)
            except ExecutionError as e:
                if not e.is_fatal:
                    raise
                logger.warning("Order %s swap rejected on %s: %s", order.id, attempt.chosen_venue, e.message)
                self._metrics.inc_fatal_failure()
                return await self.fail_order(order, e.message)
            if not await self._store.update_execution_success(attempt.id, result.tx_hash, result.executed_price):
                persisted = await self._require_attempt(order)
                logger.warning(
                    "Order %s duplicate swap tx=%s; keeping recorded tx=%s",
                    order.id,
                    result.tx_hash,
                    persisted.tx_hash,
                )
                if persisted.tx_hash:
                    result = SwapResult(tx_hash=persisted.tx_hash, executed_price=persisted.execution_price)

        target = await self._advance(order.id, OrderStatus.BUILDING)
        if target is None:
            return None
        self._notifier.publish(order.id, target)
        return await self._confirm(order, result)

    async def handle_submitted(self, order: Order) -> Optional[OrderStatus]:
        """Recovery after a crash between submitted and confirmed. Never calls a venue."""
        attempt = await self._store.get_latest_execution_attempt(order.id)
        if attempt is None or not attempt.tx_hash:
            logger.error("Order %s is submitted but has no recorded tx hash; nothing to recover", order.id)
            return None
        logger.info("Order %s recovering confirmation from recorded tx %s", order.id, attempt.tx_hash)
        return await self._confirm(order, SwapResult(tx_hash=attempt.tx_hash, executed_price=attempt.execution_price))

    async def _confirm(self, order: Order, result: SwapResult) -> Optional[OrderStatus]:
        target = await self._advance(order.id, OrderStatus.SUBMITTED)
        if target is None:
            return None
        self._notifier.publish(
            order.id,
            target,
            {"tx_hash": result.tx_hash, "execution_price": result.executed_price},
        )
        return target

    async def fail_order(self, order: Order, reason: str) -> Optional[OrderStatus]:
        """
        Shared terminal routine. Records the reason on the latest attempt and moves the order from its
        currently observed status to failed. An order already terminal is left untouched.
        """
        current = parse_status(order.status)
        if current is None or is_terminal_state(current):
            logger.info("Order %s already %s; not failing (%s)", order.id, getattr(order.status, "value", order.status), reason)
            return None
        attempt = await self._store.get_latest_execution_attempt(order.id)
        if attempt is not None:
            await self._store.update_execution_failure(attempt.id, reason)
        if not await self._transition(order.id, current, OrderStatus.FAILED):
            logger.info("Order %s moved on before it could be failed (%s)", order.id, reason)
            return None
        self._notifier.publish(order.id, OrderStatus.FAILED, {"error": reason})
        return OrderStatus.FAILED

    async def fail_order_by_id(self, order_id: str, reason: str) -> Optional[OrderStatus]:
        """Fail the order from whatever non-terminal status it is in now, re-reading it if it moves meanwhile."""
        # Each lost race means one forward step happened, so the flow length bounds the loop.
        for _ in range(len(ORDER_FLOW)):
            order = await self._store.get_order(order_id)
            if order is None:
                logger.error("Cannot fail order %s: not found (%s)", order_id, reason)
                return None
            if is_terminal_state(order.status) or parse_status(order.status) is None:
                return await self.fail_order(order, reason)
            result = await self.fail_order(order, reason)
            if result is not None:
                return result
        return None
