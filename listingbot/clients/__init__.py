"""HTTP clients for the marketplace store and the device-fleet API."""

from listingbot.clients.fleet import FleetClient
from listingbot.clients.http_client import BackendHttpClient
from listingbot.clients.marketplace import MarketplaceClient

__all__ = ["BackendHttpClient", "FleetClient", "MarketplaceClient"]
