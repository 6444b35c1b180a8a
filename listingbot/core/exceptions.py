"""Listingbot exception taxonomy.

Every custom exception inherits from :class:`ListingbotError`.  Exceptions are
organised by how the scheduler reacts to them, so callers can catch at the
right granularity:

    Layer hierarchy
    ---------------
    ListingbotError
    ├── ConfigError
    ├── BackendError
    │   ├── TransientBackendError
    │   ├── BackendRequestError
    │   └── RemoteOperationError
    └── MalformedDataError
        ├── MalformedSlugError
        ├── RecordNotFoundError
        └── MissingReferenceError

Usage:

    from listingbot.core.exceptions import TransientBackendError

    raise TransientBackendError("fleet", "Connection refused") from exc
"""

from __future__ import annotations

__all__ = [
    "ListingbotError",
    # Config
    "ConfigError",
    # Backend
    "BackendError",
    "TransientBackendError",
    "BackendRequestError",
    "RemoteOperationError",
    # Data
    "MalformedDataError",
    "MalformedSlugError",
    "RecordNotFoundError",
    "MissingReferenceError",
]

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ListingbotError(Exception):
    """Root exception for all Listingbot errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(ListingbotError):
    """Raised when the configuration is invalid or incomplete.

    Always fatal: the process refuses to start.

    Examples:
        - Marketplace credentials are missing or contain a ``:`` in the
          identifier.
        - A settings value fails validation.
    """


# ---------------------------------------------------------------------------
# Backend layer
# ---------------------------------------------------------------------------


class BackendError(ListingbotError):
    """Base class for errors returned by (or while reaching) a remote backend.

    Args:
        backend: Short backend label (``"marketplace"`` or ``"fleet"``).
        message: Human-readable error description.
        status_code: HTTP status code, if a response was received.
    """

    def __init__(self, backend: str, message: str, status_code: int | None = None) -> None:
        self.backend = backend
        self.status_code = status_code
        super().__init__(f"[{backend}] {message}")


class TransientBackendError(BackendError):
    """Raised for HTTP ≥ 500 responses and connection-level failures.

    The scheduler logs these at WARNING level and abandons the cycle; the next
    scheduled poll re-derives the same work.
    """


class BackendRequestError(BackendError):
    """Raised for any other non-2xx response (4xx other than handled 404s)."""


class RemoteOperationError(BackendError):
    """Raised when a backend answers 2xx but reports ``{"success": false}``."""


# ---------------------------------------------------------------------------
# Data layer
# ---------------------------------------------------------------------------


class MalformedDataError(ListingbotError):
    """Base class for payloads that cannot be acted upon."""


class MalformedSlugError(MalformedDataError):
    """Raised when a listing or notification slug does not end in a device id.

    Args:
        slug: The offending slug.
    """

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Malformed slug, no device id found: {slug!r}")


class RecordNotFoundError(MalformedDataError):
    """Raised when the fleet backend holds no record for an identifier.

    Args:
        kind: Record kind (e.g. ``"devicePublicData"``).
        record_id: Identifier that was looked up.
    """

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"No {kind} record with id {record_id!r}")


class MissingReferenceError(MalformedDataError):
    """Raised when a record lacks a reference needed by the next step.

    Args:
        kind: Name of the missing reference (e.g. ``"privateData"``).
        owner_id: Identifier of the record that should carry it.
    """

    def __init__(self, kind: str, owner_id: str) -> None:
        self.kind = kind
        self.owner_id = owner_id
        super().__init__(f"Record {owner_id!r} has no {kind} reference")
