"""Marketplace store API client.

Thin typed layer over :class:`~listingbot.clients.http_client.BackendHttpClient`
for the handful of store endpoints Listingbot uses.  Every request carries the
``Authorization: Basic …`` credential built at startup.

Typical usage::

    async with MarketplaceClient(base_url, credential) as market:
        for note in await market.get_unread_notifications():
            ...
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from listingbot.clients.http_client import BackendHttpClient
from listingbot.core.exceptions import MalformedDataError
from listingbot.core.models import MarketListing, Notification
from listingbot.core.slugs import require_path_segment

__all__ = ["MarketplaceClient"]

logger = logging.getLogger(__name__)

_BACKEND = "marketplace"


class MarketplaceClient:
    """Client for the marketplace store API.

    Args:
        base_url: Store API base, e.g. ``"http://localhost:4002/ob"``.
        credential: Pre-formatted ``Authorization`` header value.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempts per request (see :class:`BackendHttpClient`).
    """

    def __init__(
        self,
        base_url: str,
        credential: str,
        *,
        timeout: float = 20.0,
        max_attempts: int = 1,
    ) -> None:
        self._http = BackendHttpClient(
            _BACKEND,
            base_url=base_url,
            headers={"Authorization": credential},
            timeout=timeout,
            max_attempts=max_attempts,
        )

    async def __aenter__(self) -> MarketplaceClient:
        await self._http.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self._http.close()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def get_notifications(self) -> list[Notification]:
        """Return every notification the store currently holds.

        An envelope reporting ``unread == 0`` short-circuits to ``[]``; nothing
        downstream cares about notifications that are already read.

        Raises:
            MalformedDataError: If the payload is not the expected envelope.
        """
        payload = await self._http.get_json("/notifications")
        if not isinstance(payload, dict):
            raise MalformedDataError(f"[{_BACKEND}] notifications payload is not an object")
        if payload.get("unread") == 0:
            return []
        return _parse_list(Notification, payload.get("notifications") or [], "notification")

    async def get_unread_notifications(self) -> list[Notification]:
        """Return notifications not yet marked read, in store order."""
        return [n for n in await self.get_notifications() if not n.read]

    async def mark_notification_read(self, notification_id: str) -> None:
        require_path_segment(notification_id, "notification")
        await self._http.post(f"/marknotificationasread/{notification_id}", json={})
        logger.info("Notification %s marked as read.", notification_id)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def fulfill_order(self, order_id: str, note: str) -> None:
        """Mark *order_id* fulfilled, delivering *note* to the buyer."""
        await self._http.post("/orderfulfillment", json={"orderId": order_id, "note": note})
        logger.info("Order %s marked as fulfilled.", order_id)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def get_listings(self) -> list[MarketListing]:
        """Return the store's active listings."""
        payload = await self._http.get_json("/listings")
        if not isinstance(payload, list):
            raise MalformedDataError(f"[{_BACKEND}] listings payload is not a list")
        return _parse_list(MarketListing, payload, "listing")


def _parse_list(model: Any, items: list[Any], label: str) -> list[Any]:
    """Validate every entry of *items* against *model*.

    Raises:
        MalformedDataError: On the first entry that fails validation.
    """
    try:
        return [model.model_validate(item) for item in items]
    except ValidationError as exc:
        raise MalformedDataError(f"[{_BACKEND}] invalid {label} entry: {exc}") from exc
