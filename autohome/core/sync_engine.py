"""Configuration synchronization with the remote authority.

Two paths feed the same ``ZoneManager`` merge API:

* a periodic full refresh that pulls the zone record and device list and
  replaces local state wholesale (``STALE -> REFRESHING -> CONSISTENT``), and
* incremental events from the subscription channel, applied field by field
  in receipt order and followed by a control pass for the affected zone.

A failed refresh leaves the last-known-good state in place; a malformed
event is dropped.  Neither ever propagates to other zones.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from autohome.core.zone_manager import ZoneManager
from autohome.integrations.mqtt_client import ConfigEvent
from autohome.integrations.remote_client import RemoteClientError, RemoteConfigClient
from autohome.models.enums import SyncOperation, SyncState
from autohome.models.schemas import DeviceRecord, ZoneRecord

if TYPE_CHECKING:
    from autohome.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

ZoneChangedCallback = Callable[[str], Awaitable[None]]


class SyncError(Exception):
    """Raised when a full refresh could not obtain a valid configuration."""


class MergeError(Exception):
    """Raised when an incremental event cannot be applied."""


class SyncEngine:
    """Merge remote-sourced configuration into the local zone store."""

    def __init__(
        self,
        zones: ZoneManager,
        *,
        home_id: str,
        remote: RemoteConfigClient | None = None,
        snapshot: SnapshotService | None = None,
        on_zone_changed: ZoneChangedCallback | None = None,
    ) -> None:
        self._zones = zones
        self._home_id = home_id
        self._remote = remote
        self._snapshot = snapshot
        self._on_zone_changed = on_zone_changed
        self._event_lock = asyncio.Lock()

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None

    # ------------------------------------------------------------------
    # Full refresh
    # ------------------------------------------------------------------

    async def full_refresh(self, zone_id: str) -> SyncState:
        """Pull and replace one zone; returns the resulting sync state.

        Without a remote authority this is a no-op and local state is
        considered consistent.
        """
        if self._remote is None:
            await self._zones.set_sync_state(zone_id, SyncState.consistent)
            return SyncState.consistent

        await self._zones.set_sync_state(zone_id, SyncState.refreshing)
        try:
            record = await self._pull(zone_id)
        except SyncError as exc:
            await self._zones.set_sync_state(zone_id, SyncState.stale)
            logger.warning(
                "Full refresh of zone %s failed, keeping last-known state: %s", zone_id, exc
            )
            return SyncState.stale

        previous = self._zones.get_state(zone_id)
        if previous is not None and record.etag and record.etag == previous.etag:
            logger.debug("Zone %s unchanged (etag %s)", zone_id, record.etag)

        state = await self._zones.replace_zone(record, record.devices or [])
        await self._zones.set_sync_state(zone_id, SyncState.consistent)
        logger.info(
            "Zone %s refreshed: %d device(s), version %d",
            zone_id,
            len(state.devices),
            state.version,
        )
        await self.persist()
        return SyncState.consistent

    async def refresh_all(self, zone_ids: Iterable[str] | None = None) -> dict[str, SyncState]:
        targets = list(zone_ids) if zone_ids is not None else self._zones.zone_ids
        results = await asyncio.gather(*(self.full_refresh(zone_id) for zone_id in targets))
        return dict(zip(targets, results, strict=True))

    async def _pull(self, zone_id: str) -> ZoneRecord:
        assert self._remote is not None  # noqa: S101 - checked by full_refresh
        try:
            zone_data = await self._remote.get_zone(self._home_id, zone_id)
            device_data = await self._remote.get_devices(self._home_id, zone_id)
        except RemoteClientError as exc:
            raise SyncError(str(exc)) from exc

        try:
            return ZoneRecord.model_validate({**zone_data, "id": zone_id, "devices": device_data})
        except ValidationError as exc:
            raise SyncError(f"invalid zone record: {exc.error_count()} error(s)") from exc

    # ------------------------------------------------------------------
    # Incremental events
    # ------------------------------------------------------------------

    async def handle_event(self, event: ConfigEvent) -> bool:
        """Apply one incremental event; returns ``False`` when it was dropped.

        The event lock is taken before anything else so that events are
        applied in the order their tasks were started.
        """
        async with self._event_lock:
            try:
                changed = await self._apply(event)
            except MergeError as exc:
                logger.warning(
                    "Dropping %s event for zone %s: %s", event.operation, event.zone_id, exc
                )
                return False

        if changed:
            await self.persist()
            if self._on_zone_changed is not None:
                await self._on_zone_changed(event.zone_id)
        return True

    async def _apply(self, event: ConfigEvent) -> bool:
        try:
            operation = SyncOperation(event.operation)
        except ValueError:
            raise MergeError(f"unknown operation {event.operation!r}") from None

        state = self._zones.get_state(event.zone_id)
        if state is None:
            raise MergeError("unknown zone")
        if state.sync_state is not SyncState.consistent:
            logger.debug("Zone %s is %s; applying event anyway", event.zone_id, state.sync_state)

        try:
            if operation is SyncOperation.zone_updated:
                payload = {**self._require_object(event.payload), "id": event.zone_id}
                await self._zones.merge_zone(event.zone_id, ZoneRecord.model_validate(payload))
            elif operation is SyncOperation.device_removed:
                device_id = self._removed_device_id(event.payload)
                if await self._zones.remove_device(event.zone_id, device_id) is None:
                    logger.info("Zone %s: device %s already absent", event.zone_id, device_id)
                    return False
                logger.info("Zone %s: removed device %s", event.zone_id, device_id)
            else:
                record = DeviceRecord.model_validate(self._require_object(event.payload))
                await self._zones.upsert_device(event.zone_id, record)
        except ValidationError as exc:
            raise MergeError(f"malformed payload: {exc.error_count()} error(s)") from exc
        except KeyError as exc:
            raise MergeError(f"zone {exc} disappeared during merge") from exc
        return True

    @staticmethod
    def _require_object(payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise MergeError("payload is not a JSON object")
        return payload

    @staticmethod
    def _removed_device_id(payload: Any) -> str:
        if isinstance(payload, str) and payload:
            return payload
        if isinstance(payload, dict):
            device_id = payload.get("id") or payload.get("deviceId")
            if isinstance(device_id, str) and device_id:
                return device_id
        raise MergeError("deviceRemoved payload carries no device id")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def persist(self) -> None:
        if self._snapshot is None:
            return
        try:
            await self._snapshot.save(self._zones.to_config())
        except OSError as exc:
            logger.warning("Could not persist configuration snapshot: %s", exc)


__all__ = ["MergeError", "SyncEngine", "SyncError", "ZoneChangedCallback"]
