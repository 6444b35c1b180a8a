"""Listingbot logging configuration.

``configure_logging()`` is called once by ``__main__`` before anything else
runs.  Modules never configure handlers themselves; each one owns a logger::

    import logging
    logger = logging.getLogger(__name__)

Every record passing through the installed handler is tagged with the label
of the poll cycle that emitted it (``record.cycle``), so interleaved output
from the three scheduler tasks can be told apart:

    2026-10-16 12:00:04 INFO     [rented:5c09e1aa] listingbot.orchestrator.sweeps: ...

Environment fallbacks (used when no explicit argument is given):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default: INFO)
    LOG_FORMAT  text | json                                 (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "CYCLE_LABEL_CTX", "CycleContextFilter"]

#: ``"<task>:<cycle_id>"`` of the cycle the current coroutine belongs to, or
#: ``"-"`` outside any cycle.  Set and reset by
#: :func:`~listingbot.orchestrator.runner.run_once`.  Scheduler tasks each run
#: in a copied context, so concurrent cycles never see each other's label.
CYCLE_LABEL_CTX: ContextVar[str] = ContextVar("cycle_label", default="-")

_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_FORMATS: Final[frozenset[str]] = frozenset({"text", "json"})

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [%(cycle)s] %(name)s: %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Third-party loggers that only speak up at WARNING unless we run at DEBUG.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "asyncio")


class CycleContextFilter(logging.Filter):
    """Attach the current cycle label to every record as ``record.cycle``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.cycle = CYCLE_LABEL_CTX.get()
        return True


def _resolve(value: str | None, env_var: str, default: str, allowed: frozenset[str]) -> str:
    raw = value or os.environ.get(env_var) or default
    resolved = raw.lower() if env_var == "LOG_FORMAT" else raw.upper()
    if resolved not in allowed:
        raise ValueError(
            f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(sorted(allowed))}"
        )
    return resolved


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Level name; falls back to ``$LOG_LEVEL``, then ``INFO``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT``, then
            ``"text"``.
        force: Replace existing root handlers.  Without it, an already
            configured root logger (pytest's, for instance) only has its
            level adjusted.

    Raises:
        ValueError: If *level* or *fmt* is not recognised.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.addFilter(CycleContextFilter())
    if resolved_fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))

    root.handlers.clear()
    root.addHandler(handler)

    chatty_level = logging.DEBUG if resolved_level == "DEBUG" else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

#: Attributes every ``LogRecord`` carries; anything else came in via ``extra=``.
_BUILTIN_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "cycle", "taskName"}


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Example line::

        {"ts": "2026-10-16T12:00:04.512Z", "level": "INFO",
         "logger": "listingbot.orchestrator.sweeps", "cycle": "rented:5c09e1aa",
         "message": "...", "extra": {}}

    A formatted traceback is added under ``"exc_info"`` when present.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")

        payload: dict[str, Any] = {
            "ts": ts.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "cycle": getattr(record, "cycle", CYCLE_LABEL_CTX.get()),
            "message": record.message,
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in _BUILTIN_RECORD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text

        return json.dumps(payload, default=str)
