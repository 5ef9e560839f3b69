"""Liquidity venues: capability interface, mock venues, static registry."""

from swap_engine.venues.base import Venue
from swap_engine.venues.mock import METEORA, MOCK_VENUE_PROFILES, RAYDIUM, MockVenue, MockVenueProfile
from swap_engine.venues.registry import build_venue_registry

__all__ = [
    "Venue",
    "MockVenue",
    "MockVenueProfile",
    "MOCK_VENUE_PROFILES",
    "RAYDIUM",
    "METEORA",
    "build_venue_registry",
]
