"""Workflows, single-cycle runner, and the continuous scheduler.

Public API
----------
* :func:`~listingbot.orchestrator.scheduler.run_continuous`: default runtime
  entry-point; runs every task on its own fixed cadence until shutdown.
* :func:`~listingbot.orchestrator.runner.run_once`: one cycle of one task;
  used by the scheduler and by ``--once`` mode.
* :func:`~listingbot.orchestrator.fulfillment.fulfill_next_order`: the order
  fulfillment workflow.
* :func:`~listingbot.orchestrator.sweeps.sweep_rented_devices` /
  :func:`~listingbot.orchestrator.sweeps.sweep_listed_devices`: liveness
  sweeps.
"""

from listingbot.orchestrator.fulfillment import (
    FulfillmentOutcome,
    FulfillmentReport,
    compose_access_notice,
    fulfill_next_order,
)
from listingbot.orchestrator.runner import TASKS, CycleReport, CycleStatus, run_once
from listingbot.orchestrator.scheduler import interval_for, run_continuous
from listingbot.orchestrator.sweeps import (
    Eviction,
    EvictionReason,
    SweepReport,
    is_checkin_stale,
    is_past_grace,
    sweep_listed_devices,
    sweep_rented_devices,
)

__all__ = [
    # Scheduler
    "run_continuous",
    "interval_for",
    # Runner
    "TASKS",
    "CycleReport",
    "CycleStatus",
    "run_once",
    # Fulfillment
    "FulfillmentOutcome",
    "FulfillmentReport",
    "compose_access_notice",
    "fulfill_next_order",
    # Sweeps
    "Eviction",
    "EvictionReason",
    "SweepReport",
    "is_checkin_stale",
    "is_past_grace",
    "sweep_listed_devices",
    "sweep_rented_devices",
]
