"""Live integration tests: read-only calls against real backends.

These tests exercise :class:`~listingbot.clients.marketplace.MarketplaceClient`
and :class:`~listingbot.clients.fleet.FleetClient` against a **running**
marketplace store and fleet server.  They validate that our request shapes
are still accepted and that the responses parse into our models.  Only read
endpoints are called; no order, record, registry or listing is modified.

Default behaviour
-----------------
All tests in this module are marked ``@pytest.mark.integration`` and are
**excluded from the default test run** (``addopts = "-m 'not integration'"``
in ``pyproject.toml``).

Run on demand::

    pytest -m integration tests/integration/test_backends_live.py

Credential guards
-----------------
* Marketplace tests are **skipped** unless ``MARKETPLACE_USERNAME`` and
  ``MARKETPLACE_PASSWORD`` are set.
* Fleet tests are **skipped** unless ``FLEET_HOST`` is set.

Values are read from the real ``.env`` file loaded at module import time.
"""

from __future__ import annotations

import logging
import os

import pytest
from dotenv import load_dotenv

from listingbot.clients.fleet import FleetClient
from listingbot.clients.marketplace import MarketplaceClient
from listingbot.core.credentials import build_basic_auth
from listingbot.core.exceptions import RecordNotFoundError
from listingbot.core.settings import Settings
from listingbot.core.slugs import device_id_from_slug

logger = logging.getLogger(__name__)

load_dotenv()

_MARKETPLACE_CONFIGURED: bool = bool(
    os.environ.get("MARKETPLACE_USERNAME") and os.environ.get("MARKETPLACE_PASSWORD")
)
_FLEET_CONFIGURED: bool = bool(os.environ.get("FLEET_HOST"))

_skip_if_no_marketplace = pytest.mark.skipif(
    not _MARKETPLACE_CONFIGURED,
    reason="MARKETPLACE_USERNAME / MARKETPLACE_PASSWORD not set; skipping live store tests.",
)
_skip_if_no_fleet = pytest.mark.skipif(
    not _FLEET_CONFIGURED,
    reason="FLEET_HOST not set; skipping live fleet tests.",
)


@pytest.fixture()
def live_settings() -> Settings:
    """Settings loaded from the real environment / ``.env``."""
    return Settings()


@pytest.mark.integration
class TestMarketplaceLive:
    @_skip_if_no_marketplace
    async def test_notifications_parse(self, live_settings: Settings) -> None:
        credential = build_basic_auth(
            live_settings.marketplace_username, live_settings.marketplace_password
        )
        async with MarketplaceClient(live_settings.marketplace_base_url, credential) as market:
            notifications = await market.get_notifications()
        logger.info("Live store returned %d notification(s).", len(notifications))
        assert all(n.id for n in notifications)

    @_skip_if_no_marketplace
    async def test_listings_parse(self, live_settings: Settings) -> None:
        credential = build_basic_auth(
            live_settings.marketplace_username, live_settings.marketplace_password
        )
        async with MarketplaceClient(live_settings.marketplace_base_url, credential) as market:
            listings = await market.get_listings()
        logger.info("Live store returned %d listing(s).", len(listings))
        assert all(listing.slug for listing in listings)


@pytest.mark.integration
class TestFleetLive:
    @_skip_if_no_fleet
    async def test_rented_registry_parses(self, live_settings: Settings) -> None:
        async with FleetClient(live_settings.fleet_base_url) as fleet:
            rented = await fleet.list_rented_devices()
        assert isinstance(rented, list)

    @_skip_if_no_fleet
    @_skip_if_no_marketplace
    async def test_listed_devices_have_public_records(self, live_settings: Settings) -> None:
        credential = build_basic_auth(
            live_settings.marketplace_username, live_settings.marketplace_password
        )
        async with (
            MarketplaceClient(live_settings.marketplace_base_url, credential) as market,
            FleetClient(live_settings.fleet_base_url) as fleet,
        ):
            for listing in await market.get_listings():
                device_id = device_id_from_slug(listing.slug)
                try:
                    record = await fleet.get_device_public(device_id)
                except RecordNotFoundError:
                    logger.warning("Listing %s has no fleet record.", listing.slug)
                    continue
                assert record.id == device_id
