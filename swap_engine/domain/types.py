"""Order aggregate, execution attempts and value objects shared by store, handlers and gateway."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

from swap_engine.domain.order_state import OrderStatus


@dataclass(frozen=True)
class OrderPayload:
    """Immutable swap request as submitted by the client."""

    source_asset: str
    dest_asset: str
    amount: float
    slippage: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderPayload":
        return cls(
            source_asset=str(data["source_asset"]),
            dest_asset=str(data["dest_asset"]),
            amount=float(data["amount"]),
            slippage=float(data["slippage"]),
        )


@dataclass
class Order:
    """Aggregate root. status is only changed through OrderStore.conditional_transition.

    status is a raw str when the stored value is not a known OrderStatus (data-integrity anomaly).
    """

    id: str
    status: Union[OrderStatus, str]
    payload: OrderPayload
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value if isinstance(self.status, OrderStatus) else self.status,
            "payload": self.payload.to_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Quote:
    """Venue quote: price (output per 1 unit input) and fee rate as a fraction."""

    price: float
    fee_rate: float

    @property
    def net_price(self) -> float:
        return self.price * (1 - self.fee_rate)


@dataclass(frozen=True)
class SwapResult:
    tx_hash: str
    executed_price: float


@dataclass(frozen=True)
class RoutingDecision:
    """Chosen venue plus every venue's raw quote, recorded once per attempt."""

    venue: str
    prices: Dict[str, float]
    fees: Dict[str, float]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue,
            "prices": dict(self.prices),
            "fees": dict(self.fees),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoutingDecision":
        return cls(
            venue=str(data["venue"]),
            prices={k: float(v) for k, v in (data.get("prices") or {}).items()},
            fees={k: float(v) for k, v in (data.get("fees") or {}).items()},
            reason=str(data.get("reason") or ""),
        )


@dataclass
class ExecutionAttempt:
    """One processing lifecycle of an order. Fields are filled progressively and written at most once."""

    id: str
    order_id: str
    attempt_number: int
    chosen_venue: Optional[str] = None
    routing_decision: Optional[RoutingDecision] = None
    tx_hash: Optional[str] = None
    execution_price: Optional[float] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "attempt_number": self.attempt_number,
            "chosen_venue": self.chosen_venue,
            "routing_decision": self.routing_decision.to_dict() if self.routing_decision else None,
            "tx_hash": self.tx_hash,
            "execution_price": self.execution_price,
            "failure_reason": self.failure_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class OrderEvent:
    """Ephemeral lifecycle notification; not persisted."""

    order_id: str
    status: OrderStatus
    data: Dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        """Flat JSON message for gateway clients: order_id, status, then payload keys."""
        return {"order_id": self.order_id, "status": self.status.value, **self.data}
