"""Order orchestrator: one job = one state step for one order.

Load the order, dispatch on its status through the state -> handler table, classify errors,
and enqueue the next step when the handler left the order in a non-terminal status.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from swap_engine.core.errors import ErrorKind, classify_error
from swap_engine.core.metrics import Metrics, get_metrics
from swap_engine.domain.order_state import OrderStatus, TERMINAL_STATES, is_terminal_state, parse_status
from swap_engine.domain.types import Order
from swap_engine.fsm.handlers import OrderStateHandlers
from swap_engine.store.base import OrderStore
from swap_engine.worker.queue import JobScheduler

logger = logging.getLogger(__name__)

StateHandler = Callable[[Order], Awaitable[Optional[OrderStatus]]]

RETRY_LIMIT_REASON = "Retry limit exceeded"


class OrderOrchestrator:
    """Job body for the scheduler. Also the out-of-band target for retry exhaustion."""

    def __init__(
        self,
        store: OrderStore,
        handlers: OrderStateHandlers,
        scheduler: Optional[JobScheduler] = None,
        metrics: Optional[Metrics] = None,
    ):
        self._store = store
        self._handlers = handlers
        self._scheduler = scheduler
        self._metrics = metrics or get_metrics()
        self._state_handlers = self._get_state_handlers()
        missing = [s for s in OrderStatus if s not in TERMINAL_STATES and s not in self._state_handlers]
        if missing:
            raise ValueError(f"no handler for non-terminal states: {[s.value for s in missing]}")

    def set_scheduler(self, scheduler: Optional[JobScheduler]) -> None:
        """Scheduler and orchestrator reference each other; wire after both exist."""
        self._scheduler = scheduler

    def _get_state_handlers(self) -> Dict[OrderStatus, StateHandler]:
        """Non-terminal status -> handler. Terminal statuses have no entry (no-op)."""
        return {
            OrderStatus.PENDING: self._handlers.handle_pending,
            OrderStatus.ROUTING: self._handlers.handle_routing,
            OrderStatus.BUILDING: self._handlers.handle_building,
            OrderStatus.SUBMITTED: self._handlers.handle_submitted,
        }

    async def process_order_step(self, order_id: str) -> Optional[OrderStatus]:
        """
        Run one step for order_id.

        Fatal errors fail the order and return normally. Retriable (and untagged) errors propagate
        unchanged so the scheduler redelivers. Returns the status the step moved the order to.
        """
        order = await self._store.get_order(order_id)
        if order is None:
            logger.error("Order %s not found; dropping job", order_id)
            return None

        status = parse_status(order.status)
        if status is None:
            logger.error("Order %s has unknown status %r; dropping job", order_id, order.status)
            return None
        if is_terminal_state(status):
            logger.debug("Order %s already %s; nothing to do", order_id, status.value)
            return None

        handler = self._state_handlers[status]
        try:
            result = await handler(order)
        except Exception as e:
            if classify_error(e) == ErrorKind.FATAL:
                reason = getattr(e, "message", None) or str(e)
                logger.warning("Order %s fatal error in %s: %s", order_id, status.value, reason)
                self._metrics.inc_fatal_failure()
                return await self._handlers.fail_order(order, reason)
            logger.warning("Order %s retriable error in %s: %s", order_id, status.value, e)
            self._metrics.inc_retriable_error()
            raise

        if result is not None and not is_terminal_state(result):
            await self._schedule_next(order_id)
        return result

    async def _schedule_next(self, order_id: str) -> None:
        if self._scheduler is None:
            logger.warning("No scheduler set; order %s will not advance", order_id)
            return
        await self._scheduler.enqueue(order_id)

    async def handle_retry_exhausted(self, order_id: str, last_error: str) -> Optional[OrderStatus]:
        """Scheduler gave up on order_id: force it to failed from whatever non-terminal status it is in."""
        self._metrics.inc_retries_exhausted()
        reason = f"{RETRY_LIMIT_REASON}: {last_error}"
        logger.error("Order %s retries exhausted: %s", order_id, last_error)
        return await self._handlers.fail_order_by_id(order_id, reason)
