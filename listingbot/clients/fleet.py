"""Device-fleet API client.

Covers the device record endpoints, the rented-devices registry and the
listing-removal endpoint the fleet server exposes on behalf of the store.

The fleet wraps single records as ``{"collection": {...}}`` and reports
mutations as ``{"success": bool}``.  A missing ``collection`` or an HTTP 404
both mean "no such record".

Typical usage::

    async with FleetClient(settings.fleet_base_url) as fleet:
        record = await fleet.get_device_public("abc123")
        await fleet.force_expire(record.id, now)
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import TracebackType
from typing import Any

from pydantic import ValidationError

from listingbot.clients.http_client import BackendHttpClient
from listingbot.core.exceptions import (
    BackendRequestError,
    MalformedDataError,
    RecordNotFoundError,
    RemoteOperationError,
)
from listingbot.core.models import DevicePrivateRecord, DevicePublicRecord
from listingbot.core.slugs import require_path_segment

__all__ = ["FleetClient"]

logger = logging.getLogger(__name__)

_BACKEND = "fleet"
_PUBLIC = "devicePublicData"
_PRIVATE = "devicePrivateData"


class FleetClient:
    """Client for the device-fleet API.

    Args:
        base_url: Fleet API base, e.g. ``"http://localhost:80/api"``.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempts per request (see :class:`BackendHttpClient`).
    """

    def __init__(self, base_url: str, *, timeout: float = 20.0, max_attempts: int = 1) -> None:
        self._http = BackendHttpClient(
            _BACKEND,
            base_url=base_url,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    async def __aenter__(self) -> FleetClient:
        await self._http.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self._http.close()

    # ------------------------------------------------------------------
    # Device records
    # ------------------------------------------------------------------

    async def get_device_public(self, device_id: str) -> DevicePublicRecord:
        """Fetch the public record of *device_id*.

        Raises:
            RecordNotFoundError: If the fleet holds no such record.
            MalformedDataError: If the record fails validation.
        """
        data = await self._get_collection(f"/{_PUBLIC}/{device_id}", _PUBLIC, device_id)
        return _validate(DevicePublicRecord, data, _PUBLIC, device_id)

    async def get_device_private(self, private_id: str) -> DevicePrivateRecord:
        """Fetch a private record by its own id (not the device id)."""
        data = await self._get_collection(f"/{_PRIVATE}/{private_id}", _PRIVATE, private_id)
        return _validate(DevicePrivateRecord, data, _PRIVATE, private_id)

    async def update_device_public(self, record: DevicePublicRecord) -> None:
        """Write *record* back in full.

        Raises:
            RemoteOperationError: If the echoed record lacks an expiration.
        """
        device_id = require_path_segment(record.id, _PUBLIC)
        payload = await self._http.post_json(f"/{_PUBLIC}/{device_id}/update", json=record.to_wire())
        echoed = payload.get("collection") if isinstance(payload, dict) else None
        if not isinstance(echoed, dict) or not echoed.get("expiration"):
            raise RemoteOperationError(
                _BACKEND, f"update of {_PUBLIC} {record.id!r} was not acknowledged"
            )

    async def advance_expiration(self, device_id: str, until: datetime) -> datetime:
        """Move the device expiration forward to *until*.

        The expiration never moves backwards here: if the stored value is
        already later than *until* it is kept.

        Returns:
            The expiration now stored for the device.
        """
        record = await self.get_device_public(device_id)
        if record.expiration >= until:
            logger.info(
                "Device %s expiration %s already at or beyond %s; left unchanged.",
                device_id,
                record.expiration.isoformat(),
                until.isoformat(),
            )
            return record.expiration
        await self.update_device_public(record.model_copy(update={"expiration": until}))
        logger.info(
            "Device %s expiration advanced %s → %s.",
            device_id,
            record.expiration.isoformat(),
            until.isoformat(),
        )
        return until

    async def force_expire(self, device_id: str, now: datetime) -> None:
        """Reset the device expiration to *now*, which makes the device reboot."""
        record = await self.get_device_public(device_id)
        await self.update_device_public(record.model_copy(update={"expiration": now}))
        logger.info("Device %s expiration force-reset to %s.", device_id, now.isoformat())

    # ------------------------------------------------------------------
    # Rented-devices registry
    # ------------------------------------------------------------------

    async def list_rented_devices(self) -> list[str]:
        """Return the ids currently under lease.

        Raises:
            MalformedDataError: If the registry document is missing or is not
                wrapped in a list.
        """
        payload = await self._http.get_json("/rentedDevices/list")
        collection = payload.get("collection") if isinstance(payload, dict) else None
        registry = collection[0] if isinstance(collection, list) and collection else None
        if not isinstance(registry, dict):
            raise MalformedDataError(f"[{_BACKEND}] rented devices registry not found")
        return [str(device_id) for device_id in registry.get("rentedDevices") or []]

    async def add_rented_device(self, device_id: str) -> bool:
        """Insert *device_id* into the registry unless it is already there.

        Returns:
            ``True`` if the id was inserted, ``False`` if it was already present.
        """
        require_path_segment(device_id, "rented device")
        if device_id in await self.list_rented_devices():
            logger.info("Device %s already in rented devices registry.", device_id)
            return False
        payload = await self._http.get_json(f"/rentedDevices/add/{device_id}")
        _require_success(payload, f"add device {device_id!r} to rented devices registry")
        logger.info("Device %s added to rented devices registry.", device_id)
        return True

    async def remove_rented_device(self, device_id: str) -> bool:
        """Remove *device_id* from the registry; a non-member is a no-op.

        Returns:
            ``True`` if the backend removed the id, ``False`` otherwise.
        """
        require_path_segment(device_id, "rented device")
        try:
            payload = await self._http.get_json(f"/rentedDevices/remove/{device_id}")
        except BackendRequestError as exc:
            if exc.status_code == 404:
                logger.info("Device %s not in rented devices registry.", device_id)
                return False
            raise
        if not _is_success(payload):
            logger.info("Device %s not in rented devices registry.", device_id)
            return False
        logger.info("Device %s removed from rented devices registry.", device_id)
        return True

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def remove_market_listing(self, contract_id: str) -> bool:
        """Remove the store listing backed by *contract_id*.

        A listing that is already gone counts as removed.

        Returns:
            ``True`` if this call removed it, ``False`` if it was already gone.
        """
        require_path_segment(contract_id, "contract")
        try:
            payload = await self._http.get_json(f"/ob/removeMarketListing/{contract_id}")
        except BackendRequestError as exc:
            if exc.status_code == 404:
                logger.info("Listing for contract %s already removed.", contract_id)
                return False
            raise
        if not _is_success(payload):
            logger.info("Listing for contract %s already removed.", contract_id)
            return False
        logger.info("Listing for contract %s removed.", contract_id)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_collection(self, url: str, kind: str, record_id: str) -> dict[str, Any]:
        require_path_segment(record_id, kind)
        try:
            payload = await self._http.get_json(url)
        except BackendRequestError as exc:
            if exc.status_code == 404:
                raise RecordNotFoundError(kind, record_id) from exc
            raise
        collection = payload.get("collection") if isinstance(payload, dict) else None
        if not isinstance(collection, dict):
            raise RecordNotFoundError(kind, record_id)
        return collection


def _is_success(payload: Any) -> bool:
    return isinstance(payload, dict) and bool(payload.get("success"))


def _require_success(payload: Any, action: str) -> None:
    if not _is_success(payload):
        raise RemoteOperationError(_BACKEND, f"could not {action}")


def _validate(model: Any, data: dict[str, Any], kind: str, record_id: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedDataError(f"[{_BACKEND}] invalid {kind} {record_id!r}: {exc}") from exc
