"""Zone state management utilities for Autohome.

``ZoneManager`` owns every zone and device record.  Full refreshes and
incremental events both mutate it only through the merge methods below,
which serialize on a single lock and bump the zone version.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from autohome.integrations.drivers import ActuatorHandle
from autohome.models.enums import DEFAULT_UNITS, DeviceDirection, Signal, SyncState
from autohome.models.schemas import (
    DeviceRecord,
    HomeConfig,
    InterfaceRecord,
    OverrideRecord,
    RuleRecord,
    ScheduleRecord,
    ZoneRecord,
)

logger = logging.getLogger(__name__)

# Record fields copied onto live device state by a merge.
_DEVICE_FIELDS = (
    "name",
    "direction",
    "type",
    "interface",
    "calibration",
    "threshold",
    "unit",
    "rules",
)
_ZONE_FIELDS = ("name", "etag", "schedules", "overrides")


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class Reading:
    value: float | bool
    unit: str
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(slots=True)
class DeviceState:
    """Live state of one sensor / actuator."""

    device_id: str
    name: str = ""
    direction: DeviceDirection = DeviceDirection.input
    type: str = ""
    interface: InterfaceRecord | None = None
    calibration: float = 0.0
    threshold: float | None = None
    unit: str | None = None
    rules: list[RuleRecord] = field(default_factory=list)
    current: Reading | None = None
    target: float | bool | None = None
    signal: Signal | None = None
    last_decision: bool | None = None
    handles: dict[str, ActuatorHandle] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: DeviceRecord) -> DeviceState:
        state = cls(device_id=record.id)
        state.apply(record)
        return state

    def apply(self, record: DeviceRecord, *, fields: Iterable[str] = _DEVICE_FIELDS) -> None:
        """Overwrite configuration fields from *record*.

        Runtime fields (``current``, ``target``, ``handles``) are never
        touched; incoming payloads carry no actuator handles.
        """
        for name in fields:
            if name in _DEVICE_FIELDS:
                value = getattr(record, name)
                if isinstance(value, list):
                    value = list(value)
                setattr(self, name, value)

    @property
    def interface_kind(self) -> str | None:
        return self.interface.type if self.interface else None

    @property
    def addresses(self) -> list[str]:
        return list(self.interface.address) if self.interface else []

    @property
    def default_unit(self) -> str:
        if self.unit is not None:
            return self.unit
        return DEFAULT_UNITS.get(self.type, "")

    def to_record(self) -> DeviceRecord:
        return DeviceRecord(
            id=self.device_id,
            name=self.name,
            direction=self.direction,
            type=self.type,
            interface=self.interface,
            calibration=self.calibration,
            threshold=self.threshold,
            unit=self.unit,
            rules=list(self.rules),
        )

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.device_id,
            "name": self.name,
            "direction": self.direction.value,
            "type": self.type,
            "current": self.current.value if self.current else None,
            "unit": self.current.unit if self.current else self.default_unit,
            "target": self.target,
            "signal": self.signal.value if self.signal else None,
            "last_decision": self.last_decision,
            "addresses": self.addresses,
        }


@dataclass(slots=True)
class ZoneState:
    """Aggregated state for an Autohome zone."""

    zone_id: str
    name: str = ""
    etag: str | None = None
    schedules: list[ScheduleRecord] = field(default_factory=list)
    overrides: list[OverrideRecord] = field(default_factory=list)
    devices: dict[str, DeviceState] = field(default_factory=dict)
    sync_state: SyncState = SyncState.stale
    version: int = 0
    last_refresh_at: datetime | None = None

    def get_device(self, device_id: str) -> DeviceState | None:
        return self.devices.get(device_id)

    def apply(self, record: ZoneRecord, *, fields: Iterable[str] = _ZONE_FIELDS) -> None:
        for name in fields:
            if name in _ZONE_FIELDS:
                value = getattr(record, name)
                setattr(self, name, list(value) if isinstance(value, list) else value)
        # Records arrive sorted; local writers may not go through validation.
        self.schedules.sort(key=lambda s: s.start_minutes)

    def to_record(self) -> ZoneRecord:
        return ZoneRecord(
            id=self.zone_id,
            name=self.name,
            etag=self.etag,
            schedules=list(self.schedules),
            overrides=list(self.overrides),
            devices=[device.to_record() for device in self.devices.values()],
        )


class ZoneManager:
    """Owned, versioned store of zone/device state behind a single-writer merge API."""

    def __init__(self, *, home_id: str = "") -> None:
        self.home_id = home_id
        self._zones: dict[str, ZoneState] = {}
        self._lock = asyncio.Lock()

    def get_state(self, zone_id: str) -> ZoneState | None:
        return self._zones.get(zone_id)

    def iter_states(self) -> list[ZoneState]:
        return list(self._zones.values())

    @property
    def zone_ids(self) -> list[str]:
        return list(self._zones)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, config: HomeConfig) -> None:
        """Seed state from the local static configuration or persisted snapshot."""
        async with self._lock:
            for record in config.zones:
                state = ZoneState(zone_id=record.id)
                state.apply(record)
                for device in record.devices or []:
                    state.devices[device.id] = DeviceState.from_record(device)
                self._zones[record.id] = state
            if config.home and not self.home_id:
                self.home_id = config.home
        logger.info("Loaded %d zone(s) from local configuration", len(config.zones))

    def to_config(self) -> HomeConfig:
        return HomeConfig(
            home=self.home_id,
            zones=[state.to_record() for state in self._zones.values()],
            saved_at=_utc_now(),
        )

    # ------------------------------------------------------------------
    # Merge API
    # ------------------------------------------------------------------

    async def replace_zone(self, record: ZoneRecord, devices: list[DeviceRecord]) -> ZoneState:
        """Replace a zone wholesale (full refresh).

        Live actuator handles are transplanted from the previous device with
        the same identifier for every address the new record still declares.
        """
        async with self._lock:
            previous = self._zones.get(record.id)
            state = ZoneState(zone_id=record.id)
            state.apply(record)
            for device_record in devices:
                device = DeviceState.from_record(device_record)
                old = previous.devices.get(device.device_id) if previous else None
                if old is not None:
                    declared = set(device.addresses)
                    device.handles = {
                        address: handle
                        for address, handle in old.handles.items()
                        if address in declared
                    }
                    device.current = old.current
                    device.last_decision = old.last_decision
                state.devices[device.device_id] = device
            if previous is not None:
                state.version = previous.version + 1
                state.sync_state = previous.sync_state
            else:
                state.version = 1
            state.last_refresh_at = _utc_now()
            self._zones[record.id] = state
            return state

    async def merge_zone(self, zone_id: str, record: ZoneRecord) -> ZoneState:
        """Field-level merge of a partial zone record; only fields present overwrite."""
        async with self._lock:
            state = self._require(zone_id)
            state.apply(record, fields=record.model_fields_set)
            if record.devices is not None and "devices" in record.model_fields_set:
                for device_record in record.devices:
                    self._upsert(state, device_record)
            state.version += 1
            return state

    async def upsert_device(self, zone_id: str, record: DeviceRecord) -> DeviceState:
        async with self._lock:
            state = self._require(zone_id)
            device = self._upsert(state, record)
            state.version += 1
            return device

    async def remove_device(self, zone_id: str, device_id: str) -> DeviceState | None:
        """Drop a device from the zone.

        Its actuator handles are not commanded; the last written state stays
        on the line until the next full refresh or explicit command.
        """
        async with self._lock:
            state = self._require(zone_id)
            removed = state.devices.pop(device_id, None)
            if removed is not None:
                state.version += 1
            return removed

    async def set_sync_state(self, zone_id: str, sync_state: SyncState) -> None:
        async with self._lock:
            state = self._zones.get(zone_id)
            if state is None:
                state = ZoneState(zone_id=zone_id)
                self._zones[zone_id] = state
            state.sync_state = sync_state

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, zone_id: str) -> ZoneState:
        state = self._zones.get(zone_id)
        if state is None:
            raise KeyError(zone_id)
        return state

    @staticmethod
    def _upsert(state: ZoneState, record: DeviceRecord) -> DeviceState:
        device = state.devices.get(record.id)
        if device is None:
            device = DeviceState.from_record(record)
            state.devices[record.id] = device
            logger.info("Zone %s: added device %s", state.zone_id, record.id)
        else:
            device.apply(record, fields=record.model_fields_set)
            logger.info("Zone %s: updated device %s", state.zone_id, record.id)
        return device


__all__ = ["DeviceState", "Reading", "ZoneManager", "ZoneState"]
