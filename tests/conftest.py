"""Shared pytest fixtures and configuration for the Listingbot test suite.

Besides logging and environment hygiene this provides :class:`FakeBackend`,
an in-memory stand-in for both remote APIs.  It duck-types
``httpx.AsyncClient.request`` so that the real
:class:`~listingbot.clients.marketplace.MarketplaceClient` and
:class:`~listingbot.clients.fleet.FleetClient` can be exercised end to end
without any network I/O.
"""

from __future__ import annotations

import json as _json
import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic_settings import SettingsConfigDict

from listingbot.clients.fleet import FleetClient
from listingbot.clients.marketplace import MarketplaceClient
from listingbot.core import configure_logging
from listingbot.core.settings import Settings

NOW = datetime(2026, 10, 16, 12, 0, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test."""
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove Listingbot env vars and disable ``.env`` loading for a test."""
    prefixes = (
        "MARKETPLACE_",
        "FLEET_",
        "ACCESS_HOST",
        "POLL_INTERVAL_",
        "MAX_CHECKIN_DELAY",
        "EXPIRY_GRACE",
        "LEASE_TIER",
        "SWEEP_",
        "HTTP_",
        "SHUTDOWN_GRACE",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(env_file=None, env_file_encoding="utf-8", extra="ignore", frozen=True),
    )


@pytest.fixture()
def settings(clean_env: None) -> Settings:
    """Settings with credentials and fast intervals, isolated from the shell."""
    return Settings(
        marketplace_username="store",
        marketplace_password="s3cret",
        fleet_host="http://fleet.example",
        poll_interval_orders=1,
        poll_interval_rented=1,
        poll_interval_listed=1,
    )


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def mock_response(
    *,
    status_code: int = 200,
    json_data: Any = None,
    text: str | None = None,
) -> MagicMock:
    """Create a minimal mock of an :class:`httpx.Response`."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.is_success = 200 <= status_code < 300
    resp.text = text if text is not None else _json.dumps(json_data)
    if json_data is not None:
        resp.json.return_value = json_data
    else:
        resp.json.side_effect = ValueError("no JSON body")
    return resp


def inject_http(client: MarketplaceClient | FleetClient, mock_http: Any) -> None:
    """Install *mock_http* as the httpx session of *client*."""
    mock_http.is_closed = False
    mock_http.aclose = AsyncMock()
    client._http._http = mock_http  # noqa: SLF001


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


def public_record(
    device_id: str,
    *,
    checkin: datetime = NOW,
    expiration: datetime = NOW,
    private_id: str | None = None,
    contract_id: str | None = None,
) -> dict[str, Any]:
    """Return a fleet ``devicePublicData`` document in wire shape."""
    return {
        "_id": device_id,
        "deviceName": f"pi-{device_id}",
        "checkinTimeStamp": checkin.isoformat(),
        "expiration": expiration.isoformat(),
        "privateData": private_id if private_id is not None else f"priv-{device_id}",
        "obContract": contract_id if contract_id is not None else f"contract-{device_id}",
    }


class FakeBackend:
    """In-memory marketplace + fleet serving the endpoints Listingbot calls.

    Attributes mirror backend state so tests can arrange and assert on it.
    ``calls`` records ``(method, url, json)`` for every request; ``faults``
    maps a URL prefix to an HTTP status that is returned instead.
    """

    def __init__(self) -> None:
        self.notifications: list[dict[str, Any]] = []
        self.listings: list[dict[str, Any]] = []
        self.public: dict[str, dict[str, Any]] = {}
        self.private: dict[str, dict[str, Any]] = {}
        self.registry: list[str] = []
        self.contracts: set[str] = set()
        self.fulfilled: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str, Any]] = []
        self.faults: dict[str, int] = {}

    # -- arrangement helpers ------------------------------------------------

    def add_device(self, device_id: str, *, listed: bool = True, **kwargs: Any) -> None:
        record = public_record(device_id, **kwargs)
        self.public[device_id] = record
        self.private[record["privateData"]] = {
            "_id": record["privateData"],
            "serverSSHPort": 6022,
            "deviceUserName": "renter",
            "devicePassword": f"pw-{device_id}",
        }
        if listed:
            self.contracts.add(record["obContract"])
            self.listings.append({"slug": f"rental-{device_id}", "title": f"Pi {device_id}"})

    def add_order(self, device_id: str, *, note_id: str = "n1", read: bool = False) -> None:
        self.notifications.append(
            {
                "read": read,
                "notification": {
                    "notificationId": note_id,
                    "type": "order",
                    "slug": f"rental-{device_id}",
                    "orderId": f"order-{note_id}",
                },
            }
        )

    def urls(self, method: str | None = None) -> list[str]:
        return [url for m, url, _ in self.calls if method is None or m == method]

    # -- transport ----------------------------------------------------------

    async def request(self, method: str, url: str, json: Any = None, **_: Any) -> MagicMock:
        self.calls.append((method, url, json))
        for prefix, status in self.faults.items():
            if url.startswith(prefix):
                return mock_response(status_code=status, text="fault")
        return self._route(method, url, json)

    def _route(self, method: str, url: str, body: Any) -> MagicMock:  # noqa: C901
        parts = url.strip("/").split("/")
        ok = mock_response

        if url == "/notifications":
            unread = sum(1 for n in self.notifications if not n["read"])
            return ok(json_data={"unread": unread, "notifications": self.notifications})
        if url == "/orderfulfillment":
            self.fulfilled.append(body)
            return ok(json_data={})
        if parts[0] == "marknotificationasread":
            for n in self.notifications:
                if n["notification"]["notificationId"] == parts[1]:
                    n["read"] = True
            return ok(json_data={})
        if url == "/listings":
            return ok(json_data=self.listings)

        if parts[0] == "devicePublicData":
            device_id = parts[1]
            if method == "POST":
                self.public[device_id] = dict(body)
                return ok(json_data={"collection": body})
            if device_id not in self.public:
                return ok(json_data={})
            return ok(json_data={"collection": self.public[device_id]})
        if parts[0] == "devicePrivateData":
            if parts[1] not in self.private:
                return ok(status_code=404, text="Not Found")
            return ok(json_data={"collection": self.private[parts[1]]})

        if parts[0] == "rentedDevices":
            if parts[1] == "list":
                return ok(json_data={"collection": [{"rentedDevices": list(self.registry)}]})
            if parts[1] == "add":
                self.registry.append(parts[2])
                return ok(json_data={"success": True})
            if parts[1] == "remove":
                if parts[2] in self.registry:
                    self.registry.remove(parts[2])
                    return ok(json_data={"success": True})
                return ok(json_data={"success": False})

        if parts[:2] == ["ob", "removeMarketListing"]:
            contract_id = parts[2]
            if contract_id not in self.contracts:
                return ok(json_data={"success": False})
            self.contracts.discard(contract_id)
            self.listings = [
                listing
                for listing in self.listings
                if f"contract-{listing['slug'].rsplit('-', 1)[-1]}" != contract_id
            ]
            return ok(json_data={"success": True})

        return ok(status_code=404, text=f"no route for {method} {url}")


@pytest.fixture()
def now() -> datetime:
    """Fixed reference clock shared by the fake backend and cycle contexts."""
    return NOW


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
async def market(backend: FakeBackend) -> AsyncGenerator[MarketplaceClient, None]:
    """Marketplace client wired to :class:`FakeBackend`."""
    client = MarketplaceClient("http://market.example:4002/ob", "Basic dGVzdDp0ZXN0")
    mock_http = MagicMock()
    mock_http.request = AsyncMock(side_effect=backend.request)
    inject_http(client, mock_http)
    async with client:
        yield client


@pytest.fixture()
async def fleet(backend: FakeBackend) -> AsyncGenerator[FleetClient, None]:
    """Fleet client wired to :class:`FakeBackend`."""
    client = FleetClient("http://fleet.example:80/api")
    mock_http = MagicMock()
    mock_http.request = AsyncMock(side_effect=backend.request)
    inject_http(client, mock_http)
    async with client:
        yield client
