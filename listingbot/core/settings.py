"""Runtime configuration for Listingbot.

Each variable listed in ``.env.example`` is one field of :class:`Settings`,
named in lowercase (``FLEET_HOST`` is ``settings.fleet_host``).  The process
environment wins over ``.env``, which wins over the field default.  The
object is frozen once built; per-cycle values are copied into a
:class:`~listingbot.core.run_context.CycleContext`.

Typical usage::

    from listingbot.core.settings import load_settings

    settings = load_settings()
    settings.fleet_base_url      # "http://localhost:80/api"
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from urllib.parse import urlparse

from pydantic import Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from listingbot.core.exceptions import ConfigError
from listingbot.core.models import LeaseTier, lease_duration

__all__ = ["Settings", "load_settings"]

#: Accepted values and case normalisation for the two logging options.
_LOG_CHOICES: dict[str, tuple[frozenset[str], Callable[[str], str]]] = {
    "log_level": (frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}), str.upper),
    "log_format": (frozenset({"text", "json"}), str.lower),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _join_base(host: str, port: int, prefix: str) -> str:
    """Build ``<host>:<port><prefix>`` without doubled slashes."""
    host = host.rstrip("/")
    prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""
    return f"{host}:{port}{prefix}"


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Validated, immutable Listingbot configuration.

    Marketplace credentials default to empty strings so that the object can
    be constructed in tests; the runner refuses to start without them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Marketplace
    # ------------------------------------------------------------------
    marketplace_host: str = Field(
        default="http://localhost",
        description="Scheme and host of the marketplace store API.",
    )
    marketplace_port: int = Field(default=4002, ge=1, le=65535)
    marketplace_api_prefix: str = Field(default="/ob", description="Path prefix of the store API.")
    marketplace_username: str = Field(default="", description="Marketplace API identifier.")
    marketplace_password: str = Field(default="", description="Marketplace API secret.")

    # ------------------------------------------------------------------
    # Device fleet
    # ------------------------------------------------------------------
    fleet_host: str = Field(
        default="http://localhost",
        description="Scheme and host of the device-fleet API.",
    )
    fleet_port: int = Field(default=80, ge=1, le=65535)
    fleet_api_prefix: str = Field(default="/api", description="Path prefix of the fleet API.")
    access_host: str = Field(
        default="",
        description="Host printed in renter access notices (defaults to the fleet hostname).",
    )

    # ------------------------------------------------------------------
    # Polling intervals (seconds)
    # ------------------------------------------------------------------
    poll_interval_orders: int = Field(default=120, ge=1)
    poll_interval_rented: int = Field(default=300, ge=1)
    poll_interval_listed: int = Field(default=300, ge=1)

    # ------------------------------------------------------------------
    # Liveness / leasing
    # ------------------------------------------------------------------
    max_checkin_delay: int = Field(
        default=600,
        ge=1,
        description="Seconds a device may go without checking in before eviction.",
    )
    expiry_grace: int = Field(
        default=300,
        ge=0,
        description="Seconds past expiration before a listing is removed.",
    )
    lease_tier: LeaseTier = Field(
        default=LeaseTier.TESTING,
        description="Lease duration applied when an order is fulfilled.",
    )
    sweep_stop_at_first: bool = Field(
        default=False,
        description="Stop each sweep at the first actionable device (legacy behaviour).",
    )

    # ------------------------------------------------------------------
    # Transport / runtime
    # ------------------------------------------------------------------
    http_timeout: float = Field(default=20.0, gt=0.0)
    http_max_attempts: int = Field(
        default=1,
        ge=1,
        description="Attempts per HTTP request; 1 disables in-cycle retries.",
    )
    shutdown_grace: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds to let in-flight cycles finish on shutdown.",
    )
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("marketplace_host", "fleet_host")
    @classmethod
    def _validate_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"host must start with http:// or https://, got {v!r}")
        return v.rstrip("/")

    @field_validator("log_level", "log_format")
    @classmethod
    def _validate_log_option(cls, v: str, info: ValidationInfo) -> str:
        allowed, normalise = _LOG_CHOICES[info.field_name]
        value = normalise(v)
        if value not in allowed:
            raise ValueError(f"{info.field_name} must be one of {sorted(allowed)}, got {v!r}")
        return value

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def marketplace_base_url(self) -> str:
        return _join_base(self.marketplace_host, self.marketplace_port, self.marketplace_api_prefix)

    @property
    def fleet_base_url(self) -> str:
        return _join_base(self.fleet_host, self.fleet_port, self.fleet_api_prefix)

    @property
    def access_hostname(self) -> str:
        """Host shown to renters; falls back to the fleet API hostname."""
        return self.access_host or urlparse(self.fleet_host).hostname or self.fleet_host

    @property
    def max_checkin_delta(self) -> timedelta:
        return timedelta(seconds=self.max_checkin_delay)

    @property
    def expiry_grace_delta(self) -> timedelta:
        return timedelta(seconds=self.expiry_grace)

    @property
    def lease_delta(self) -> timedelta:
        return lease_duration(self.lease_tier)


def load_settings(**overrides: object) -> Settings:
    """Load :class:`Settings`, converting validation failures to :class:`ConfigError`.

    Args:
        **overrides: Explicit field values that take precedence over the
            environment (mainly for tests and the CLI).

    Raises:
        ConfigError: If any value fails validation.
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
