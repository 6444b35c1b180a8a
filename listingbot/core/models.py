"""Listingbot core domain models.

Transient, in-flight copies of records owned by the two backends.  The
marketplace and the fleet API both speak camelCase JSON (the fleet uses
Mongo-style ``_id`` keys); every model declares aliases for the wire names
and snake_case attributes for Python code.

Typical usage::

    from listingbot.core.models import DevicePublicRecord

    record = DevicePublicRecord.model_validate(payload["collection"])
    record.checkin_timestamp  # timezone-aware datetime
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = [
    "LeaseTier",
    "LEASE_DURATIONS",
    "lease_duration",
    "Notification",
    "DevicePublicRecord",
    "DevicePrivateRecord",
    "MarketListing",
]


# ---------------------------------------------------------------------------
# Lease tiers
# ---------------------------------------------------------------------------


class LeaseTier(StrEnum):
    """Named lease durations a device expiration can be advanced by."""

    NOW = "now"
    TESTING = "testing"
    ONE_HOUR = "1hr"
    ONE_DAY = "1day"
    ONE_WEEK = "1week"
    ONE_MONTH = "1month"


#: Offset added to "now" when a device's expiration is advanced.
#: ``NOW`` is the force-reset tier used to trigger a device reboot.
LEASE_DURATIONS: dict[LeaseTier, timedelta] = {
    LeaseTier.NOW: timedelta(0),
    LeaseTier.TESTING: timedelta(minutes=8),
    LeaseTier.ONE_HOUR: timedelta(hours=1),
    LeaseTier.ONE_DAY: timedelta(days=1),
    LeaseTier.ONE_WEEK: timedelta(days=7),
    LeaseTier.ONE_MONTH: timedelta(days=30),
}


def lease_duration(tier: LeaseTier | str) -> timedelta:
    """Return the offset for *tier* (accepts the tier's string value too)."""
    return LEASE_DURATIONS[LeaseTier(tier)]


def _as_utc(v: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v


# ---------------------------------------------------------------------------
# Marketplace models
# ---------------------------------------------------------------------------


class Notification(BaseModel):
    """One marketplace notification.

    The marketplace nests the interesting fields one level down::

        {"read": false,
         "notification": {"notificationId": "...", "type": "order",
                          "slug": "rental-abc123", "orderId": "..."}}

    Both that envelope and an already-flattened dict are accepted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="notificationId", min_length=1)
    type: str = Field(default="")
    read: bool = Field(default=False)
    slug: str = Field(default="")
    order_id: str | None = Field(default=None, alias="orderId")

    @model_validator(mode="before")
    @classmethod
    def _flatten_envelope(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("notification"), dict):
            flat = dict(data["notification"])
            flat.setdefault("read", data.get("read", False))
            return flat
        return data

    @property
    def is_order(self) -> bool:
        return self.type == "order"


class MarketListing(BaseModel):
    """An active marketplace listing; only the slug matters to us."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    slug: str = Field(..., min_length=1)
    title: str = Field(default="")


# ---------------------------------------------------------------------------
# Fleet models
# ---------------------------------------------------------------------------


class DevicePublicRecord(BaseModel):
    """Public half of a device record held by the fleet backend.

    Extra keys are kept because ``devicePublicData/{id}/update`` expects the
    whole record back, not a patch.

    Attributes:
        id: Device identifier (wire name ``_id``).
        expiration: When the current listing or lease ends.
        checkin_timestamp: Last time the device phoned home.
        private_data: Reference to the :class:`DevicePrivateRecord`.
        ob_contract: Reference to the marketplace listing contract.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str = Field(..., alias="_id", min_length=1)
    expiration: datetime
    checkin_timestamp: datetime = Field(..., alias="checkinTimeStamp")
    private_data: str | None = Field(default=None, alias="privateData")
    ob_contract: str | None = Field(default=None, alias="obContract")

    @field_validator("expiration", "checkin_timestamp")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_validator("private_data", "ob_contract", mode="before")
    @classmethod
    def _blank_ref_to_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def checkin_delay(self, now: datetime) -> timedelta:
        """Time elapsed between the last check-in and *now*."""
        return now - self.checkin_timestamp

    def to_wire(self) -> dict[str, Any]:
        """Serialise back to the fleet backend's JSON shape."""
        return self.model_dump(mode="json", by_alias=True)


class DevicePrivateRecord(BaseModel):
    """Login material for a device; embedded verbatim into the access notice."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id", min_length=1)
    server_ssh_port: int = Field(..., alias="serverSSHPort", ge=1, le=65535)
    device_user_name: str = Field(..., alias="deviceUserName")
    device_password: str = Field(..., alias="devicePassword")
