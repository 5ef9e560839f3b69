"""Static venue lookup table: venue id -> Venue, resolved once at startup."""

import logging
import random
from typing import Dict, Optional

from swap_engine.venues.base import Venue
from swap_engine.venues.mock import MOCK_VENUE_PROFILES, MockVenue, profile_with_overrides

logger = logging.getLogger(__name__)


def build_venue_registry(venue_config: Dict[str, dict], rng: Optional[random.Random] = None) -> Dict[str, Venue]:
    """Build {venue_id: Venue} for every configured venue that has a known profile."""
    registry: Dict[str, Venue] = {}
    for name, cfg in venue_config.items():
        profile = MOCK_VENUE_PROFILES.get(name)
        if profile is None:
            logger.warning("Unknown venue %r in config; skipped (known: %s)", name, sorted(MOCK_VENUE_PROFILES))
            continue
        registry[name] = MockVenue(profile_with_overrides(profile, cfg), rng=rng)
    if not registry:
        raise ValueError("no venues configured")
    logger.info("Venue registry: %s", ", ".join(sorted(registry)))
    return registry
