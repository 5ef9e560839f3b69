"""Structured logging for order transitions, routing decisions and job outcomes."""

import logging
import uuid
from typing import Any, Optional

from swap_engine.domain.types import RoutingDecision

logger = logging.getLogger(__name__)


def _ensure_trace_id(extra: dict) -> str:
    trace_id = extra.get("trace_id")
    if not trace_id:
        trace_id = str(uuid.uuid4())[:8]
        extra["trace_id"] = trace_id
    return trace_id


def _value(v: Any) -> Any:
    return getattr(v, "value", v)


def log_order_transition(
    order_id: str,
    from_status: Any,
    to_status: Any,
    ok: bool,
    trace_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> None:
    """Log one conditional transition request. ok=False means another worker already advanced the order."""
    extra = extra or {}
    if trace_id:
        extra["trace_id"] = trace_id
    _ensure_trace_id(extra)
    extra["order_id"] = order_id
    extra["from_state"] = _value(from_status)
    extra["to_state"] = _value(to_status)
    extra["ok"] = ok
    msg = "order_transition " + " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
    if ok:
        logger.info(msg)
    else:
        logger.warning(msg)


def log_routing_decision(
    order_id: str,
    decision: RoutingDecision,
    trace_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> None:
    """Log chosen venue and every venue's raw price / fee."""
    extra = extra or {}
    if trace_id:
        extra["trace_id"] = trace_id
    _ensure_trace_id(extra)
    extra["order_id"] = order_id
    extra["venue"] = decision.venue
    for name, price in sorted(decision.prices.items()):
        extra[f"{name}_price"] = f"{price:.4f}"
    for name, fee in sorted(decision.fees.items()):
        extra[f"{name}_fee"] = fee
    msg = "routing_decision " + " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
    logger.info(msg)


def log_job_outcome(
    order_id: str,
    outcome: str,
    attempt: Optional[int] = None,
    error: Optional[str] = None,
    job_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> None:
    """Log job completion / failure / exhaustion."""
    extra = extra or {}
    if job_id:
        extra["trace_id"] = job_id
    _ensure_trace_id(extra)
    extra["order_id"] = order_id
    extra["outcome"] = outcome
    if attempt is not None:
        extra["attempt"] = attempt
    if error:
        extra["error"] = repr(error)
    msg = "job " + " ".join(f"{k}={v}" for k, v in sorted(extra.items()))
    if outcome == "completed":
        logger.debug(msg)
    elif outcome == "exhausted":
        logger.error(msg)
    else:
        logger.warning(msg)
