"""Liveness sweeps over rented devices and listed devices.

Both sweeps run in two phases: first every candidate is inspected and the
actionable ones are collected, then each collected device is acted upon.
Work is sequential throughout to keep the load on the fleet backend flat.

``CycleContext.stop_at_first`` restores the older policy of stopping at the
first actionable device; the remainder is then picked up by later cycles.

Error isolation
---------------
A :class:`~listingbot.core.exceptions.MalformedDataError` concerns one device
only (bad slug, missing record, missing contract reference); it is logged,
recorded on the report and the sweep moves on.  This is a deliberate change
from earlier releases, which abandoned the whole sweep on the first such error
and so let one bad listing block every listing after it.  Backend errors
propagate and abandon the cycle, because the next device would almost
certainly hit the same unreachable or failing backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from listingbot.clients.fleet import FleetClient
from listingbot.clients.marketplace import MarketplaceClient
from listingbot.core.exceptions import MalformedDataError, MissingReferenceError
from listingbot.core.models import DevicePublicRecord
from listingbot.core.run_context import CycleContext
from listingbot.core.slugs import device_id_from_slug

__all__ = [
    "EvictionReason",
    "Eviction",
    "SweepReport",
    "is_checkin_stale",
    "is_past_grace",
    "sweep_rented_devices",
    "sweep_listed_devices",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class EvictionReason(StrEnum):
    INACTIVE = "inactive"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Eviction:
    device_id: str
    reason: EvictionReason


@dataclass
class SweepReport:
    """Counters for one sweep cycle.

    Attributes:
        sweep: ``"rented"`` or ``"listed"``.
        inspected: Devices whose public record was examined.
        evictions: Devices acted upon, in processing order.
        errors: One line per device that could not be handled.
    """

    sweep: str
    inspected: int = 0
    evictions: list[Eviction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def evicted_ids(self) -> list[str]:
        return [e.device_id for e in self.evictions]

    def summary(self) -> str:
        return (
            f"{self.sweep} sweep: inspected={self.inspected} "
            f"evicted={len(self.evictions)} errors={len(self.errors)}"
        )


# ---------------------------------------------------------------------------
# Staleness predicates
# ---------------------------------------------------------------------------


def is_checkin_stale(record: DevicePublicRecord, now: datetime, max_delay: timedelta) -> bool:
    """``True`` if the device has been silent for strictly longer than *max_delay*."""
    return record.checkin_delay(now) > max_delay


def is_past_grace(record: DevicePublicRecord, now: datetime, grace: timedelta) -> bool:
    """``True`` if *now* is strictly later than the expiration plus *grace*."""
    return now > record.expiration + grace


def _record_error(report: SweepReport, subject: str, exc: MalformedDataError) -> None:
    logger.error("%s sweep: skipping %s: %s", report.sweep, subject, exc, exc_info=True)
    report.errors.append(f"{subject}: {exc}")


# ---------------------------------------------------------------------------
# Rented devices
# ---------------------------------------------------------------------------


async def sweep_rented_devices(ctx: CycleContext, fleet: FleetClient) -> SweepReport:
    """Evict rented devices that stopped checking in.

    A stale device has its expiration force-reset to ``ctx.now`` (which makes
    the device reboot and revoke the renter's access) and is then removed
    from the rented devices registry.
    """
    report = SweepReport("rented")
    stale: list[str] = []

    for device_id in await fleet.list_rented_devices():
        try:
            record = await fleet.get_device_public(device_id)
        except MalformedDataError as exc:
            _record_error(report, f"device {device_id}", exc)
            continue
        report.inspected += 1
        if not is_checkin_stale(record, ctx.now, ctx.max_checkin_delay):
            continue
        logger.debug(
            "Rented device %s silent for %s (limit %s).",
            device_id,
            record.checkin_delay(ctx.now),
            ctx.max_checkin_delay,
        )
        stale.append(device_id)
        if ctx.stop_at_first:
            break

    for device_id in stale:
        try:
            await fleet.force_expire(device_id, ctx.now)
            await fleet.remove_rented_device(device_id)
        except MalformedDataError as exc:
            _record_error(report, f"device {device_id}", exc)
            continue
        report.evictions.append(Eviction(device_id, EvictionReason.INACTIVE))
        logger.info("Device %s removed from rented devices due to inactivity.", device_id)

    return report


# ---------------------------------------------------------------------------
# Listed devices
# ---------------------------------------------------------------------------


async def sweep_listed_devices(
    ctx: CycleContext,
    market: MarketplaceClient,
    fleet: FleetClient,
) -> SweepReport:
    """Remove store listings whose device went silent or whose time ran out.

    * Silent device: expiration force-reset to ``ctx.now``, listing removed.
    * Expired past the grace period: listing removed.

    A listing that is already gone counts as removed.
    """
    report = SweepReport("listed")
    actionable: list[tuple[DevicePublicRecord, EvictionReason]] = []

    for listing in await market.get_listings():
        try:
            device_id = device_id_from_slug(listing.slug)
            record = await fleet.get_device_public(device_id)
        except MalformedDataError as exc:
            _record_error(report, f"listing {listing.slug}", exc)
            continue
        report.inspected += 1

        if is_checkin_stale(record, ctx.now, ctx.max_checkin_delay):
            reason = EvictionReason.INACTIVE
        elif is_past_grace(record, ctx.now, ctx.expiry_grace):
            reason = EvictionReason.EXPIRED
        else:
            continue

        actionable.append((record, reason))
        if ctx.stop_at_first:
            break

    for record, reason in actionable:
        try:
            if reason is EvictionReason.INACTIVE:
                await fleet.force_expire(record.id, ctx.now)
            if not record.ob_contract:
                raise MissingReferenceError("obContract", record.id)
            await fleet.remove_market_listing(record.ob_contract)
        except MalformedDataError as exc:
            _record_error(report, f"device {record.id}", exc)
            continue
        report.evictions.append(Eviction(record.id, reason))
        if reason is EvictionReason.INACTIVE:
            logger.info("Listing for device %s removed due to inactivity.", record.id)
        else:
            logger.info("Listing for device %s removed, expiration reached.", record.id)

    return report
