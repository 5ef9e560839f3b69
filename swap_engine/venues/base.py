"""Venue capability: quote and execute a swap. Routing never looks past the returned numbers."""

from abc import ABC, abstractmethod

from swap_engine.domain.types import Quote, SwapResult


class Venue(ABC):
    """A liquidity venue.

    execute_swap raises ExecutionError(kind=FATAL) when the executed price falls below
    reference_price * (1 - slippage), and ExecutionError(kind=RETRIABLE) on transient failure.
    """

    name: str = ""

    @abstractmethod
    async def quote(self, source_asset: str, dest_asset: str, amount: float) -> Quote:
        ...

    @abstractmethod
    async def execute_swap(self, source_asset: str, dest_asset: str, amount: float, slippage: float) -> SwapResult:
        ...
