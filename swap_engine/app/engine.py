"""SwapEngine: wires store, notifier, venues, router, handlers, orchestrator and job queue from config.

Order submission validates the request, persists the order in pending and enqueues its first step.
"""

import asyncio
import logging
import math
import signal
import uuid
from typing import Any, Dict, List, Mapping, Optional

from swap_engine.config.settings import (
    get_order_defaults,
    get_queue_config,
    get_routing_config,
    get_store_config,
    get_venue_config,
    read_config,
)
from swap_engine.core.errors import OrderValidationError
from swap_engine.core.metrics import Metrics, get_metrics
from swap_engine.domain.types import Order, OrderPayload
from swap_engine.events.notifier import LifecycleNotifier
from swap_engine.fsm.handlers import OrderStateHandlers
from swap_engine.fsm.orchestrator import OrderOrchestrator
from swap_engine.routing.router import VenueRouter
from swap_engine.store import OrderStore, build_store
from swap_engine.venues.base import Venue
from swap_engine.venues.registry import build_venue_registry
from swap_engine.worker.queue import InProcessJobQueue

logger = logging.getLogger(__name__)


def _validate_asset(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise OrderValidationError(f"{name} is required")
    return value.strip()


def _validate_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise OrderValidationError(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise OrderValidationError(f"{name} must be finite")
    return number


class SwapEngine:
    """Process-level container. Collaborators can be injected; anything missing is built from config."""

    def __init__(
        self,
        config: Optional[dict] = None,
        store: Optional[OrderStore] = None,
        venues: Optional[Mapping[str, Venue]] = None,
        notifier: Optional[LifecycleNotifier] = None,
        metrics: Optional[Metrics] = None,
    ):
        self.config = config or {}
        self.metrics = metrics or get_metrics()
        self.store = store if store is not None else build_store(get_store_config(self.config))
        self.notifier = notifier or LifecycleNotifier()
        if venues is None:
            venues = build_venue_registry(get_venue_config(self.config))
        self.router = VenueRouter(venues, get_routing_config(self.config)["venue_preference"])
        self.handlers = OrderStateHandlers(self.store, self.notifier, self.router, self.metrics)
        self.orchestrator = OrderOrchestrator(self.store, self.handlers, metrics=self.metrics)

        queue_cfg = get_queue_config(self.config)
        self.queue = InProcessJobQueue(
            self.orchestrator.process_order_step,
            self.orchestrator.handle_retry_exhausted,
            concurrency=queue_cfg["concurrency"],
            attempts=queue_cfg["attempts"],
            backoff_delay_sec=queue_cfg["backoff_delay_sec"],
            backoff_type=queue_cfg["backoff_type"] or "exponential",
            name=queue_cfg["name"] or "order-execution",
        )
        self.orchestrator.set_scheduler(self.queue)
        self._default_slippage = get_order_defaults(self.config)["default_slippage"]
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.queue.start()
        self._started = True
        logger.info("Swap engine started (venues=%s)", ", ".join(sorted(self.router.venues)))

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self.queue.stop()
        self.notifier.clear()
        await self.store.close()
        self.metrics.log_snapshot()
        logger.info("Swap engine stopped")

    def build_payload(self, source_asset: Any, dest_asset: Any, amount: Any, slippage: Any = None) -> OrderPayload:
        """Validate an order request. Raises OrderValidationError."""
        source = _validate_asset("source_asset", source_asset)
        dest = _validate_asset("dest_asset", dest_asset)
        if amount is None:
            raise OrderValidationError("amount is required")
        qty = _validate_number("amount", amount)
        if qty <= 0:
            raise OrderValidationError("amount must be greater than 0")
        tol = self._default_slippage if slippage is None else _validate_number("slippage", slippage)
        if not 0 <= tol < 1:
            raise OrderValidationError("slippage must be in [0, 1)")
        return OrderPayload(source_asset=source, dest_asset=dest, amount=qty, slippage=tol)

    async def submit_order(
        self,
        source_asset: Any,
        dest_asset: Any,
        amount: Any,
        slippage: Any = None,
        order_id: Optional[str] = None,
    ) -> Order:
        """Create the order in pending and enqueue its first step."""
        payload = self.build_payload(source_asset, dest_asset, amount, slippage)
        order_id = order_id or str(uuid.uuid4())
        order = await self.store.create_order(order_id, payload)
        self.metrics.inc_orders_submitted()
        logger.info(
            "Created order %s %s->%s amount=%s slippage=%s",
            order.id,
            payload.source_asset,
            payload.dest_asset,
            payload.amount,
            payload.slippage,
        )
        await self.queue.enqueue(order.id)
        return order

    async def get_order_with_executions(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Order plus its execution attempts (audit trail), or None."""
        order = await self.store.get_order(order_id)
        if order is None:
            return None
        executions = await self.store.get_order_executions(order_id)
        return {"order": order.to_dict(), "executions": [e.to_dict() for e in executions]}

    async def list_recent_orders(self, limit: int = 50) -> List[Dict[str, Any]]:
        orders = await self.store.get_recent_orders(limit)
        return [o.to_dict() for o in orders]

    async def health(self) -> Dict[str, Any]:
        try:
            db_ok = await self.store.check_connection()
        except Exception as e:
            logger.warning("Store health check failed: %s", e)
            db_ok = False
        return {
            "status": "ok" if db_ok and self._started else "degraded",
            "database": "connected" if db_ok else "disconnected",
            "queue": {"running": self.queue.running, "outstanding": self.queue.outstanding},
            "metrics": self.metrics.snapshot(),
        }


async def _run_engine_main(config_path: Optional[str] = None, serve: bool = True) -> None:
    """Load config, register signals, run the engine (and the gateway when serve=True) until SIGTERM/SIGINT."""
    config, resolved_path = read_config(config_path)
    logger.info("Config loaded from %s", resolved_path)
    engine = SwapEngine(config)
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _on_stop_signal(*_args: Any) -> None:
        logger.info("Received SIGTERM/SIGINT; stopping")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _on_stop_signal)
        except (NotImplementedError, OSError):
            pass  # add_signal_handler not supported on Windows

    if serve:
        from swap_engine.server.app import serve_engine

        await serve_engine(engine, config, stop_event)
        return

    await engine.start()
    try:
        await stop_event.wait()
    finally:
        await engine.stop()


def run_engine(config_path: Optional[str] = None, serve: bool = True) -> None:
    """Entry: run the swap engine (SIGTERM/SIGINT stop)."""
    asyncio.run(_run_engine_main(config_path, serve=serve))
