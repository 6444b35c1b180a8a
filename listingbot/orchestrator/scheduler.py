"""Continuous fixed-cadence scheduler for Listingbot.

Each task (``orders``, ``rented``, ``listed``) gets its own loop that ticks
every ``POLL_INTERVAL_<TASK>`` seconds, starting immediately.  A tick starts
a new cycle as a separate :class:`asyncio.Task`, so a slow backend never
delays the cadence.  If the previous cycle of the same task is still running
when a tick fires, that tick is skipped and logged; two cycles of one task
never overlap.

Graceful shutdown
~~~~~~~~~~~~~~~~~
``SIGTERM`` and ``SIGINT`` set a stop event.  The tick loops exit at once,
in-flight cycles get ``SHUTDOWN_GRACE`` seconds to finish, and whatever is
still running after that is cancelled.  :func:`run_continuous` then returns
normally so the process can exit with status 0.

Typical usage::

    import asyncio
    from listingbot.core.settings import Settings
    from listingbot.orchestrator.scheduler import run_continuous

    asyncio.run(run_continuous(Settings()))
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from collections.abc import Iterable

from listingbot.core.credentials import build_basic_auth
from listingbot.core.settings import Settings
from listingbot.orchestrator.runner import TASKS, CycleReport, run_once

__all__ = [
    "HEARTBEAT_PATH",
    "interval_for",
    "run_continuous",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Health-check heartbeat
# ---------------------------------------------------------------------------

#: Rewritten with the current epoch time after every finished cycle so a
#: container health check can tell a live-but-failing process from a hung one.
HEARTBEAT_PATH: str = os.environ.get("LISTINGBOT_HEARTBEAT_PATH", "/tmp/listingbot_heartbeat")


def _write_heartbeat(path: str = HEARTBEAT_PATH) -> None:
    """Write the current epoch timestamp to *path*; failures are only logged."""
    try:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(str(time.time()))
    except OSError:
        logger.warning("Failed to write heartbeat file '%s'.", path, exc_info=True)


# ---------------------------------------------------------------------------
# Interval helpers
# ---------------------------------------------------------------------------


def interval_for(task: str, settings: Settings) -> float:
    """Return the configured poll interval for *task* in seconds."""
    intervals = {
        "orders": settings.poll_interval_orders,
        "rented": settings.poll_interval_rented,
        "listed": settings.poll_interval_listed,
    }
    return float(intervals[task])


# ---------------------------------------------------------------------------
# Internal loops
# ---------------------------------------------------------------------------


async def _cycle(task: str, settings: Settings, credential: str) -> CycleReport | None:
    try:
        return await run_once(task, settings, credential)
    except Exception:
        logger.exception("%s cycle raised outside the runner's error handling.", task)
        return None
    finally:
        _write_heartbeat()


async def _task_loop(
    task: str,
    settings: Settings,
    credential: str,
    stop: asyncio.Event,
    inflight: set[asyncio.Task[CycleReport | None]],
) -> None:
    """Tick every interval until *stop* is set, never overlapping cycles."""
    interval = interval_for(task, settings)
    logger.info("%s loop started, interval %.0f s.", task, interval)
    current: asyncio.Task[CycleReport | None] | None = None

    while not stop.is_set():
        if current is not None and not current.done():
            logger.warning("%s cycle %s still running; skipping this tick.", task, current.get_name())
        else:
            current = asyncio.create_task(
                _cycle(task, settings, credential),
                name=f"listingbot-{task}-cycle",
            )
            inflight.add(current)
            current.add_done_callback(inflight.discard)

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)

    logger.info("%s loop stopped.", task)


async def _drain(inflight: set[asyncio.Task[CycleReport | None]], grace: float) -> None:
    """Let in-flight cycles finish for up to *grace* seconds, then cancel the rest."""
    if not inflight:
        return
    logger.info("Waiting up to %.0f s for %d in-flight cycle(s).", grace, len(inflight))
    _, pending = await asyncio.wait(set(inflight), timeout=grace)
    for task in pending:
        logger.warning("Cancelling %s after shutdown grace period.", task.get_name())
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


# ---------------------------------------------------------------------------
# Public entry-point
# ---------------------------------------------------------------------------


async def run_continuous(
    settings: Settings,
    tasks: Iterable[str] = TASKS,
    *,
    stop: asyncio.Event | None = None,
) -> None:
    """Run the selected tasks on their own cadences until a shutdown signal.

    Args:
        settings: Loaded application settings.
        tasks: Task names to schedule (defaults to all of :data:`TASKS`).
        stop: Event that ends the run when set; created internally when
            ``None``.  Signal handlers set it too.

    Raises:
        ConfigError: If the marketplace credential cannot be built.
    """
    credential = build_basic_auth(settings.marketplace_username, settings.marketplace_password)
    selected = list(dict.fromkeys(tasks))
    stop = stop or asyncio.Event()
    inflight: set[asyncio.Task[CycleReport | None]] = set()

    loop = asyncio.get_running_loop()
    received: list[str] = []

    def _request_shutdown(signame: str) -> None:
        if not received:
            received.append(signame)
            logger.info("Received %s; finishing in-flight cycles before exit.", signame)
        stop.set()

    registered: list[signal.Signals] = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, _request_shutdown, sig.name)
            registered.append(sig)

    logger.info("Listingbot entering continuous mode for tasks: %s.", ", ".join(selected))

    try:
        await asyncio.gather(
            *(
                asyncio.create_task(
                    _task_loop(task, settings, credential, stop, inflight),
                    name=f"listingbot-{task}-loop",
                )
                for task in selected
            )
        )
        await _drain(inflight, settings.shutdown_grace)
    finally:
        for sig in registered:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(sig)

    logger.info("Shutdown complete.")
