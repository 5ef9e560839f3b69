"""In-process lifecycle event relay. Subscribers filter by order id themselves."""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from swap_engine.domain.order_state import OrderStatus
from swap_engine.domain.types import OrderEvent

logger = logging.getLogger(__name__)

Listener = Callable[[OrderEvent], None]


class LifecycleNotifier:
    """
    Synchronous fire-and-forget publish/subscribe.

    publish() calls every listener registered at that moment, in registration order, then returns.
    Nothing is buffered: events published with no listener are lost. A listener that raises is logged
    and the remaining listeners still receive the event.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, order_id: str, status: OrderStatus, data: Optional[Dict[str, Any]] = None) -> OrderEvent:
        event = OrderEvent(order_id=order_id, status=OrderStatus(status), data=dict(data or {}))
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.exception("Lifecycle listener failed for order=%s status=%s: %s", order_id, event.status.value, e)
        logger.debug("published order=%s status=%s listeners=%d", order_id, event.status.value, len(listeners))
        return event

    def clear(self) -> None:
        """Drop all listeners (process shutdown)."""
        with self._lock:
            self._listeners.clear()
