"""Orchestrator entry-point: run one cycle of one task and classify its outcome.

:func:`run_once` is what every scheduler tick calls, and what ``--once``
mode calls directly.  Each call:

1. Builds a fresh :class:`~listingbot.core.run_context.CycleContext`.
2. Tags every log record emitted during the cycle with ``<task>:<cycle_id>``.
3. Opens the backend clients the task needs via
   :class:`contextlib.AsyncExitStack` and closes them on exit.
4. Runs the task body and turns any failure into a :class:`CycleReport`
   so that a failed cycle never takes the scheduler down.

Error classification
--------------------
* :class:`~listingbot.core.exceptions.TransientBackendError`: WARNING;
  the backend is down or overloaded and the next tick retries.
* :class:`~listingbot.core.exceptions.ConfigError`: re-raised; fatal.
* Any other :class:`~listingbot.core.exceptions.ListingbotError`: ERROR
  with traceback.
* Anything else: logged with :meth:`logging.Logger.exception`.
"""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from listingbot.clients.fleet import FleetClient
from listingbot.clients.marketplace import MarketplaceClient
from listingbot.core.credentials import build_basic_auth
from listingbot.core.exceptions import ConfigError, ListingbotError, TransientBackendError
from listingbot.core.logging_config import CYCLE_LABEL_CTX
from listingbot.core.run_context import CycleContext
from listingbot.core.settings import Settings
from listingbot.orchestrator.fulfillment import FulfillmentReport, fulfill_next_order
from listingbot.orchestrator.sweeps import (
    SweepReport,
    sweep_listed_devices,
    sweep_rented_devices,
)

__all__ = ["TASKS", "CycleStatus", "CycleReport", "run_once"]

logger = logging.getLogger(__name__)

#: Task names accepted by :func:`run_once` and the scheduler.
TASKS: Final[tuple[str, ...]] = ("orders", "rented", "listed")


class CycleStatus(StrEnum):
    OK = "ok"
    TRANSIENT = "transient"
    FAILED = "failed"


@dataclass
class CycleReport:
    """Outcome of a single cycle of one task."""

    task: str
    cycle_id: str
    status: CycleStatus
    detail: str = ""
    duration_s: float = 0.0
    result: FulfillmentReport | SweepReport | None = None

    @property
    def ok(self) -> bool:
        return self.status is CycleStatus.OK


async def _run_task(
    ctx: CycleContext,
    settings: Settings,
    credential: str,
) -> FulfillmentReport | SweepReport:
    timeout = settings.http_timeout
    attempts = settings.http_max_attempts

    async with AsyncExitStack() as stack:
        fleet = await stack.enter_async_context(
            FleetClient(settings.fleet_base_url, timeout=timeout, max_attempts=attempts)
        )
        if ctx.task == "rented":
            return await sweep_rented_devices(ctx, fleet)

        market = await stack.enter_async_context(
            MarketplaceClient(
                settings.marketplace_base_url,
                credential,
                timeout=timeout,
                max_attempts=attempts,
            )
        )
        if ctx.task == "orders":
            return await fulfill_next_order(ctx, market, fleet)
        return await sweep_listed_devices(ctx, market, fleet)


async def run_once(
    task: str,
    settings: Settings,
    credential: str | None = None,
) -> CycleReport:
    """Execute one cycle of *task*.

    Args:
        task: One of :data:`TASKS`.
        settings: Loaded application settings.
        credential: Pre-built marketplace ``Authorization`` value.  Built from
            *settings* when ``None``.

    Returns:
        A :class:`CycleReport`; failures are reported, not raised.

    Raises:
        ConfigError: If *task* is unknown or the credential cannot be built.
    """
    if task not in TASKS:
        raise ConfigError(f"Unknown task {task!r}; expected one of {', '.join(TASKS)}.")
    if credential is None:
        credential = build_basic_auth(settings.marketplace_username, settings.marketplace_password)

    ctx = CycleContext.from_settings(task, settings)
    token = CYCLE_LABEL_CTX.set(ctx.label)
    t0 = time.monotonic()
    report = CycleReport(task=task, cycle_id=ctx.cycle_id, status=CycleStatus.OK)

    try:
        logger.debug("%s cycle starting at %s.", task, ctx.now.isoformat())
        report.result = await _run_task(ctx, settings, credential)
        report.detail = report.result.summary()
        logger.info("%s cycle done: %s", task, report.detail)
    except ConfigError:
        raise
    except TransientBackendError as exc:
        report.status = CycleStatus.TRANSIENT
        report.detail = str(exc)
        logger.warning("%s cycle abandoned, backend unavailable: %s. Will retry next poll.", task, exc)
    except ListingbotError as exc:
        report.status = CycleStatus.FAILED
        report.detail = f"{type(exc).__name__}: {exc}"
        logger.error("%s cycle failed: %s", task, report.detail, exc_info=True)
    except Exception as exc:  # noqa: BLE001
        report.status = CycleStatus.FAILED
        report.detail = f"{type(exc).__name__}: {exc}"
        logger.exception("Unhandled exception in %s cycle.", task)
    finally:
        report.duration_s = time.monotonic() - t0
        CYCLE_LABEL_CTX.reset(token)

    return report
