"""Pytest fixtures for swap engine tests."""

import random
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import yaml

# Ensure project root is in path for swap_engine imports
_project_root = Path(__file__).resolve().parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from swap_engine.core.metrics import Metrics  # noqa: E402
from swap_engine.domain.types import OrderEvent, Quote, SwapResult  # noqa: E402
from swap_engine.events.notifier import LifecycleNotifier  # noqa: E402
from swap_engine.store.memory_store import InMemoryOrderStore  # noqa: E402
from swap_engine.venues.base import Venue  # noqa: E402
from swap_engine.venues.mock import METEORA, RAYDIUM, MockVenue  # noqa: E402


def _project_root_path() -> Path:
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def project_root() -> Path:
    return _project_root_path()


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Always the example: tests must not depend on a local config.yaml."""
    return project_root / "config" / "config.yaml.example"


@pytest.fixture
def config(config_path: Path) -> dict:
    """Load config dict from YAML."""
    with open(config_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def notifier() -> LifecycleNotifier:
    return LifecycleNotifier()


@pytest.fixture
def metrics() -> Metrics:
    return Metrics()


class RecordingListener:
    """Collects every published event."""

    def __init__(self):
        self.events: List[OrderEvent] = []

    def __call__(self, event: OrderEvent) -> None:
        self.events.append(event)

    def statuses(self, order_id: Optional[str] = None) -> List[str]:
        return [e.status.value for e in self.events if order_id is None or e.order_id == order_id]


@pytest.fixture
def recorder(notifier: LifecycleNotifier) -> RecordingListener:
    listener = RecordingListener()
    notifier.subscribe(listener)
    return listener


class StubVenue(Venue):
    """Venue with a fixed quote. execute_swap returns `result` or raises `error`; calls are counted."""

    def __init__(
        self,
        name: str,
        price: float = 100.0,
        fee_rate: float = 0.003,
        result: Optional[SwapResult] = None,
        error: Optional[Exception] = None,
        quote_error: Optional[Exception] = None,
    ):
        self.name = name
        self.price = price
        self.fee_rate = fee_rate
        self.result = result or SwapResult(tx_hash=f"mock_{name}_tx", executed_price=price)
        self.error = error
        self.quote_error = quote_error
        self.quote_calls = 0
        self.swap_calls = 0

    async def quote(self, source_asset, dest_asset, amount):
        self.quote_calls += 1
        if self.quote_error is not None:
            raise self.quote_error
        return Quote(price=self.price, fee_rate=self.fee_rate)

    async def execute_swap(self, source_asset, dest_asset, amount, slippage):
        self.swap_calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def stub_venues() -> Dict[str, StubVenue]:
    """raydium wins on net price: 100 * 0.997 = 99.7 > 99.5 * 0.998 = 99.301."""
    return {
        "raydium": StubVenue("raydium", price=100.0, fee_rate=0.003),
        "meteora": StubVenue("meteora", price=99.5, fee_rate=0.002),
    }


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def fast_mock_venues() -> Dict[str, Venue]:
    """Real mock venues with zero latency and no simulated transient failures."""
    rng = random.Random(7)
    return {
        p.name: MockVenue(replace(p, quote_latency_sec=0.0, swap_latency_sec=(0.0, 0.0), failure_rate=0.0), rng=rng, sleep=_no_sleep)
        for p in (RAYDIUM, METEORA)
    }
