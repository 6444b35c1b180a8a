"""Order fulfillment workflow: new order → device lookup → credentials → teardown.

One call to :func:`fulfill_next_order` handles at most one order: the first
unread notification in store order.  Later orders wait for later cycles.

Steps run strictly in sequence and any exception aborts the rest of the
cycle.  Nothing is rolled back.  The order is marked fulfilled *before* its
notification is marked read, so if a later step fails the notification is
still unread and the next cycle replays the whole sequence.  Every step from
fulfillment onwards tolerates being replayed:

1. Fetch unread notifications; none → ``idle``.
2. Take the first; not an order → ``skipped``.
3. Parse the device id from the slug.
4. Fetch the device public record.
5. Fetch the device private record through ``privateData``.
6. Deliver the access notice and mark the order fulfilled.
7. Mark the notification read.
8. Advance the device expiration by the configured lease.
9. Register the device as rented.
10. Remove the store listing referenced by ``obContract``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from listingbot.clients.fleet import FleetClient
from listingbot.clients.marketplace import MarketplaceClient
from listingbot.core.exceptions import MissingReferenceError
from listingbot.core.models import DevicePrivateRecord
from listingbot.core.run_context import CycleContext
from listingbot.core.slugs import device_id_from_slug

__all__ = [
    "FulfillmentOutcome",
    "FulfillmentReport",
    "compose_access_notice",
    "fulfill_next_order",
]

logger = logging.getLogger(__name__)


class FulfillmentOutcome(StrEnum):
    IDLE = "idle"
    SKIPPED = "skipped"
    FULFILLED = "fulfilled"


@dataclass(frozen=True)
class FulfillmentReport:
    """Result of one fulfillment cycle that did not raise."""

    outcome: FulfillmentOutcome
    notification_id: str | None = None
    order_id: str | None = None
    device_id: str | None = None
    listing_removed: bool = False

    def summary(self) -> str:
        if self.outcome is FulfillmentOutcome.FULFILLED:
            return (
                f"fulfilled order {self.order_id} with device {self.device_id} "
                f"(listing removed: {self.listing_removed})"
            )
        if self.outcome is FulfillmentOutcome.SKIPPED:
            return f"skipped notification {self.notification_id} (not an order)"
        return "no unread notifications"


def compose_access_notice(host: str, private: DevicePrivateRecord) -> str:
    """Return the login instructions sent to the buyer with the fulfillment."""
    return (
        f"Host: {host}\n"
        f"Port: {private.server_ssh_port}\n"
        f"Login: {private.device_user_name}\n"
        f"Password: {private.device_password}\n"
    )


async def fulfill_next_order(
    ctx: CycleContext,
    market: MarketplaceClient,
    fleet: FleetClient,
) -> FulfillmentReport:
    """Fulfill the first unread order notification, if there is one.

    Args:
        ctx: Context of the current cycle (clock, lease, access host).
        market: Open marketplace client.
        fleet: Open fleet client.

    Returns:
        A :class:`FulfillmentReport` describing what happened.

    Raises:
        MalformedSlugError: The notification slug carries no device id.
        RecordNotFoundError: The device public or private record is missing.
        MissingReferenceError: The notification has no order id, or the device
            record has no ``privateData`` / ``obContract`` reference.
        BackendError: Any remote call failed.
    """
    unread = await market.get_unread_notifications()
    if not unread:
        logger.debug("No unread notifications.")
        return FulfillmentReport(FulfillmentOutcome.IDLE)

    notice = unread[0]
    if len(unread) > 1:
        logger.info("%d unread notifications; handling %s this cycle.", len(unread), notice.id)
    if not notice.is_order:
        logger.debug("Notification %s is of type %r, not an order.", notice.id, notice.type)
        return FulfillmentReport(FulfillmentOutcome.SKIPPED, notification_id=notice.id)
    if not notice.order_id:
        raise MissingReferenceError("orderId", notice.id)

    device_id = device_id_from_slug(notice.slug)
    logger.info("Order %s purchased device %s.", notice.order_id, device_id)

    public = await fleet.get_device_public(device_id)
    if not public.private_data:
        raise MissingReferenceError("privateData", device_id)
    private = await fleet.get_device_private(public.private_data)

    await market.fulfill_order(notice.order_id, compose_access_notice(ctx.access_host, private))
    await market.mark_notification_read(notice.id)

    await fleet.advance_expiration(device_id, ctx.now + ctx.lease)
    await fleet.add_rented_device(device_id)

    if not public.ob_contract:
        raise MissingReferenceError("obContract", device_id)
    removed = await fleet.remove_market_listing(public.ob_contract)

    return FulfillmentReport(
        FulfillmentOutcome.FULFILLED,
        notification_id=notice.id,
        order_id=notice.order_id,
        device_id=device_id,
        listing_removed=removed,
    )
