"""Best-execution routing: quote every venue concurrently, pick the best net price after fees."""

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from swap_engine.domain.types import Quote, RoutingDecision
from swap_engine.venues.base import Venue

logger = logging.getLogger(__name__)


def net_price(price: float, fee_rate: float) -> float:
    """price * (1 - fee_rate)."""
    return price * (1 - fee_rate)


def _rank(venue_ids: Sequence[str], preference: Sequence[str]) -> List[str]:
    """Venue ids in preference order; ids missing from preference keep their given order, after the preferred ones."""
    preferred = [v for v in preference if v in venue_ids]
    rest = [v for v in venue_ids if v not in preferred]
    return preferred + rest


def select_venue(quotes: Mapping[str, Quote], preference: Optional[Sequence[str]] = None) -> RoutingDecision:
    """
    Select the venue with the strictly greatest net price. On a tie the earlier venue in
    preference wins. The decision records every venue's raw price and fee unchanged.
    """
    if not quotes:
        raise ValueError("no quotes to route on")
    ordered = _rank(list(quotes), preference or [])
    best = ordered[0]
    best_net = quotes[best].net_price
    for venue_id in ordered[1:]:
        candidate = quotes[venue_id].net_price
        if candidate > best_net:
            best, best_net = venue_id, candidate
    return RoutingDecision(
        venue=best,
        prices={v: q.price for v, q in quotes.items()},
        fees={v: q.fee_rate for v, q in quotes.items()},
        reason=f"{best} offers better net price after fees ({best_net:.4f})",
    )


class VenueRouter:
    """Fans quote requests out to every registered venue and selects one."""

    def __init__(self, venues: Mapping[str, Venue], preference: Optional[Sequence[str]] = None):
        self._venues = dict(venues)
        self._preference = list(preference or [])

    @property
    def venues(self) -> Dict[str, Venue]:
        return self._venues

    def get_venue(self, venue_id: str) -> Optional[Venue]:
        return self._venues.get(venue_id)

    async def fetch_quotes(self, source_asset: str, dest_asset: str, amount: float) -> Dict[str, Quote]:
        """All quotes joined before returning. Any single failure propagates unchanged."""
        venue_ids = list(self._venues)
        results = await asyncio.gather(
            *(self._venues[v].quote(source_asset, dest_asset, amount) for v in venue_ids)
        )
        return dict(zip(venue_ids, results))

    async def route(self, source_asset: str, dest_asset: str, amount: float) -> RoutingDecision:
        quotes = await self.fetch_quotes(source_asset, dest_asset, amount)
        decision = select_venue(quotes, self._preference)
        logger.debug("route %s->%s amount=%s -> %s", source_asset, dest_asset, amount, decision.venue)
        return decision
