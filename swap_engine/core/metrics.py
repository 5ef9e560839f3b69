"""Simple in-memory metrics for order transitions, race losses, failures and job retries."""

import logging
import threading
from collections import Counter
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Metrics:
    """In-memory counters; log on demand or expose via the gateway /health."""

    def __init__(self):
        self._lock = threading.Lock()
        self._transitions: Counter = Counter()
        self._race_losses = 0
        self._fatal_failures = 0
        self._retriable_errors = 0
        self._retries_exhausted = 0
        self._orders_submitted = 0

    def inc_transition(self, to_status: str) -> None:
        with self._lock:
            self._transitions[to_status] += 1

    def inc_race_loss(self) -> None:
        with self._lock:
            self._race_losses += 1

    def inc_fatal_failure(self) -> None:
        with self._lock:
            self._fatal_failures += 1

    def inc_retriable_error(self) -> None:
        with self._lock:
            self._retriable_errors += 1

    def inc_retries_exhausted(self) -> None:
        with self._lock:
            self._retries_exhausted += 1

    def inc_orders_submitted(self) -> None:
        with self._lock:
            self._orders_submitted += 1

    @property
    def race_losses(self) -> int:
        with self._lock:
            return self._race_losses

    def transition_count(self, to_status: str) -> int:
        with self._lock:
            return self._transitions.get(to_status, 0)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "orders_submitted": self._orders_submitted,
                "transitions": dict(self._transitions),
                "race_losses": self._race_losses,
                "fatal_failures": self._fatal_failures,
                "retriable_errors": self._retriable_errors,
                "retries_exhausted": self._retries_exhausted,
            }

    def log_snapshot(self) -> None:
        """Log current metrics snapshot."""
        snap = self.snapshot()
        parts = [f"orders_submitted={snap['orders_submitted']}"]
        for status, n in sorted(snap["transitions"].items()):
            parts.append(f"{status}={n}")
        parts.append(f"race_losses={snap['race_losses']}")
        parts.append(f"fatal_failures={snap['fatal_failures']}")
        parts.append(f"retriable_errors={snap['retriable_errors']}")
        if snap["retries_exhausted"]:
            parts.append(f"retries_exhausted={snap['retries_exhausted']}")
        logger.info("metrics " + " ".join(parts))


_global_metrics: Optional[Metrics] = None


def get_metrics() -> Metrics:
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = Metrics()
    return _global_metrics
