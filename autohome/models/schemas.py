"""Pydantic schemas for records exchanged with the configuration authority."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .enums import DeviceDirection, InterfaceKind, RuleDirection

_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ChangeRecord(_Record):
    """A desired value for one device, carried by schedules and overrides."""

    device: str = Field(min_length=1)
    value: bool | float
    unit: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_value(cls, data: Any) -> Any:
        # Accept ``deviceId`` and nested ``{"value": {"value": 21, "unit": "C"}}``.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "device" not in data and "deviceId" in data:
            data["device"] = data.pop("deviceId")
        value = data.get("value")
        if isinstance(value, dict):
            data["value"] = value.get("value")
            data.setdefault("unit", value.get("unit"))
        return data


class ScheduleRecord(_Record):
    days: list[int] = Field(default_factory=list)
    start: str = "00:00"
    changes: list[ChangeRecord] = Field(default_factory=list)

    @field_validator("days", mode="before")
    @classmethod
    def _parse_days(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        days: list[int] = []
        for day in v:
            if isinstance(day, str) and day[:3].lower() in _DAY_NAMES:
                days.append(_DAY_NAMES.index(day[:3].lower()))
            else:
                days.append(day)
        return days

    @field_validator("days")
    @classmethod
    def _check_days(cls, v: list[int]) -> list[int]:
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"day {day} outside 0 (Sunday) .. 6 (Saturday)")
        return v

    @field_validator("start")
    @classmethod
    def _check_start(cls, v: str) -> str:
        hour, _, minute = v.partition(":")
        if not (hour.isdigit() and minute[:2].isdigit()):
            raise ValueError(f"start {v!r} is not HH:MM")
        if int(hour) > 23 or int(minute[:2]) > 59:
            raise ValueError(f"start {v!r} is not a time of day")
        return f"{int(hour):02d}:{int(minute[:2]):02d}"

    @property
    def start_minutes(self) -> int:
        hour, minute = self.start.split(":")
        return int(hour) * 60 + int(minute)


class OverrideRecord(_Record):
    start: datetime
    end: datetime | None = None
    changes: list[ChangeRecord] = Field(default_factory=list)

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def _default_end(self) -> OverrideRecord:
        if self.end is None:
            self.end = self.start
        return self

    def is_active(self, now: datetime) -> bool:
        end = self.end if self.end is not None else self.start
        return self.start <= now <= end


class InterfaceRecord(_Record):
    type: InterfaceKind
    address: list[str] = Field(default_factory=list)

    @field_validator("address", mode="before")
    @classmethod
    def _listify(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (str, int)):
            return [str(v)]
        if isinstance(v, list):
            return [str(item) for item in v]
        return v


class RuleRecord(_Record):
    """Actuate the owning device when ``device`` reports ``direction``."""

    device: str
    direction: RuleDirection

    @model_validator(mode="before")
    @classmethod
    def _accept_aliases(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for alias in ("referencedDeviceId", "referencedDevice", "deviceId"):
                if "device" not in data and alias in data:
                    data["device"] = data.pop(alias)
            # The authority also encodes direction as +1 / -1.
            direction = data.get("direction")
            if isinstance(direction, (int, float)) and not isinstance(direction, bool):
                data["direction"] = "increase" if direction > 0 else "decrease"
        return data


class DeviceRecord(_Record):
    id: str = Field(min_length=1)
    name: str = ""
    direction: DeviceDirection = DeviceDirection.input
    type: str = ""
    interface: InterfaceRecord | None = None
    calibration: float = 0.0
    threshold: float | None = None
    unit: str | None = None
    rules: list[RuleRecord] = Field(default_factory=list)

    @property
    def addresses(self) -> list[str]:
        return list(self.interface.address) if self.interface else []


class ZoneRecord(_Record):
    id: str = Field(min_length=1)
    name: str = ""
    etag: str | None = Field(default=None, alias="@etag")
    schedules: list[ScheduleRecord] = Field(default_factory=list)
    overrides: list[OverrideRecord] = Field(default_factory=list)
    devices: list[DeviceRecord] | None = None

    @field_validator("schedules")
    @classmethod
    def _sort_schedules(cls, v: list[ScheduleRecord]) -> list[ScheduleRecord]:
        return sorted(v, key=lambda s: s.start_minutes)

    @field_validator("overrides")
    @classmethod
    def _sort_overrides(cls, v: list[OverrideRecord]) -> list[OverrideRecord]:
        return sorted(v, key=lambda o: (o.start, o.end or o.start))

    @field_validator("devices")
    @classmethod
    def _unique_devices(cls, v: list[DeviceRecord] | None) -> list[DeviceRecord] | None:
        if v is None:
            return v
        seen: set[str] = set()
        for device in v:
            if device.id in seen:
                raise ValueError(f"duplicate device id {device.id!r}")
            seen.add(device.id)
        return v


class HomeConfig(_Record):
    """Local static configuration and persisted snapshot layout."""

    home: str = ""
    zones: list[ZoneRecord] = Field(default_factory=list)
    saved_at: datetime | None = None


class ZoneSummary(BaseModel):
    zone_id: str
    name: str
    sync_state: str
    version: int
    last_refresh_at: datetime | None = None
    devices: list[dict[str, Any]] = Field(default_factory=list)
