"""Core domain models, settings, logging configuration, and shared utilities."""

from listingbot.core.credentials import build_basic_auth
from listingbot.core.exceptions import (
    BackendError,
    BackendRequestError,
    ConfigError,
    ListingbotError,
    MalformedDataError,
    MalformedSlugError,
    MissingReferenceError,
    RecordNotFoundError,
    RemoteOperationError,
    TransientBackendError,
)
from listingbot.core.logging_config import JsonFormatter, configure_logging
from listingbot.core.models import (
    DevicePrivateRecord,
    DevicePublicRecord,
    LeaseTier,
    MarketListing,
    Notification,
    lease_duration,
)
from listingbot.core.run_context import CycleContext
from listingbot.core.settings import Settings, load_settings
from listingbot.core.slugs import device_id_from_slug

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Settings / context
    "Settings",
    "load_settings",
    "CycleContext",
    # Credentials
    "build_basic_auth",
    # Domain models
    "Notification",
    "MarketListing",
    "DevicePublicRecord",
    "DevicePrivateRecord",
    "LeaseTier",
    "lease_duration",
    "device_id_from_slug",
    # Exceptions
    "ListingbotError",
    "ConfigError",
    "BackendError",
    "TransientBackendError",
    "BackendRequestError",
    "RemoteOperationError",
    "MalformedDataError",
    "MalformedSlugError",
    "RecordNotFoundError",
    "MissingReferenceError",
]
