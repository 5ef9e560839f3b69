"""Mock venues. Latency, price variance and failure rate follow the venue profile.

raydium: fee 0.3%, quote 98-102% of base; meteora: fee 0.2%, quote 97-102% of base.
Both execute at 99-101% of base and check slippage against the base price.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from swap_engine.core.errors import fatal_error, retriable_error
from swap_engine.domain.types import Quote, SwapResult
from swap_engine.venues.base import Venue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MockVenueProfile:
    """Static capability numbers for one mock venue."""

    name: str
    fee_rate: float
    quote_band: tuple[float, float]
    execution_band: tuple[float, float] = (0.99, 1.01)
    base_price: float = 100.0
    quote_latency_sec: float = 0.2
    swap_latency_sec: tuple[float, float] = (2.0, 3.0)
    failure_rate: float = 0.05


RAYDIUM = MockVenueProfile(name="raydium", fee_rate=0.003, quote_band=(0.98, 1.02))
METEORA = MockVenueProfile(name="meteora", fee_rate=0.002, quote_band=(0.97, 1.02))

MOCK_VENUE_PROFILES: dict[str, MockVenueProfile] = {
    RAYDIUM.name: RAYDIUM,
    METEORA.name: METEORA,
}


def _uniform(rng: random.Random, band: tuple[float, float]) -> float:
    low, high = band
    return low + rng.random() * (high - low)


class MockVenue(Venue):
    """Venue backed by a MockVenueProfile. rng and sleep are injectable for deterministic tests."""

    def __init__(
        self,
        profile: MockVenueProfile,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.profile = profile
        self.name = profile.name
        self._rng = rng or random.Random()
        self._sleep = sleep

    def _tx_hash(self) -> str:
        suffix = "".join(self._rng.choice("abcdefghijklmnopqrstuvwxyz0123456789") for _ in range(9))
        return f"mock_{self.name}_{int(time.time() * 1000)}_{suffix}"

    async def quote(self, source_asset: str, dest_asset: str, amount: float) -> Quote:
        await self._sleep(self.profile.quote_latency_sec)
        price = self.profile.base_price * _uniform(self._rng, self.profile.quote_band)
        logger.debug("[%s] quote %s->%s amount=%s price=%.4f", self.name, source_asset, dest_asset, amount, price)
        return Quote(price=price, fee_rate=self.profile.fee_rate)

    async def execute_swap(self, source_asset: str, dest_asset: str, amount: float, slippage: float) -> SwapResult:
        await self._sleep(_uniform(self._rng, self.profile.swap_latency_sec))
        executed_price = self.profile.base_price * _uniform(self._rng, self.profile.execution_band)
        reference_price = self.profile.base_price
        if executed_price < reference_price * (1 - slippage):
            raise fatal_error(f"Slippage exceeded on {self.name}")
        if self._rng.random() < self.profile.failure_rate:
            raise retriable_error(f"Network timeout on {self.name}")
        tx_hash = self._tx_hash()
        logger.info("[%s] swap executed tx=%s price=%.4f", self.name, tx_hash, executed_price)
        return SwapResult(tx_hash=tx_hash, executed_price=executed_price)


def profile_with_overrides(profile: MockVenueProfile, cfg: Optional[dict]) -> MockVenueProfile:
    """Apply config latency / failure overrides. Fee and price bands stay fixed per venue."""
    if not cfg:
        return profile
    return replace(
        profile,
        quote_latency_sec=float(cfg.get("quote_latency_sec", profile.quote_latency_sec)),
        swap_latency_sec=tuple(cfg.get("swap_latency_sec", profile.swap_latency_sec)),
        failure_rate=float(cfg.get("failure_rate", profile.failure_rate)),
    )
