"""Per-cycle context threaded through every workflow step.

A fresh :class:`CycleContext` is built by the runner at the start of every
poll cycle and passed explicitly to each step.  It is frozen so that two
overlapping cycles (say a fulfillment run and a sweep) can never observe each
other's state, and so that every step in a cycle agrees on a single ``now``.

Typical usage::

    ctx = CycleContext.from_settings("rented", settings)
    if record.checkin_delay(ctx.now) > ctx.max_checkin_delay:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from listingbot.core.settings import Settings

__all__ = ["CycleContext"]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CycleContext:
    """Immutable snapshot of everything a single cycle needs besides its clients.

    Attributes:
        task: Scheduler task name (``"orders"``, ``"rented"`` or ``"listed"``).
        now: Wall-clock reference for every comparison made in the cycle.
        max_checkin_delay: Devices silent for longer than this are stale.
        expiry_grace: Listings survive this long past their expiration.
        lease: Offset applied to ``now`` when an order is fulfilled.
        access_host: Host printed in renter access notices.
        stop_at_first: Legacy sweep policy; stop after the first eviction.
        cycle_id: Short correlation id for log lines.
    """

    task: str
    now: datetime = field(default_factory=_utcnow)
    max_checkin_delay: timedelta = timedelta(minutes=10)
    expiry_grace: timedelta = timedelta(minutes=5)
    lease: timedelta = timedelta(minutes=8)
    access_host: str = "localhost"
    stop_at_first: bool = False
    cycle_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    @classmethod
    def from_settings(
        cls,
        task: str,
        settings: Settings,
        *,
        now: datetime | None = None,
    ) -> CycleContext:
        """Build a context for *task* from the loaded settings."""
        return cls(
            task=task,
            now=now or _utcnow(),
            max_checkin_delay=settings.max_checkin_delta,
            expiry_grace=settings.expiry_grace_delta,
            lease=settings.lease_delta,
            access_host=settings.access_hostname,
            stop_at_first=settings.sweep_stop_at_first,
        )

    @property
    def label(self) -> str:
        """``"<task>:<cycle_id>"``, the value injected into log records."""
        return f"{self.task}:{self.cycle_id}"
