"""Venue selection by net price after fees."""

from swap_engine.routing.router import VenueRouter, net_price, select_venue

__all__ = ["VenueRouter", "net_price", "select_venue"]
