"""Domain enums for Autohome zones and devices."""

from enum import StrEnum


class DeviceDirection(StrEnum):
    input = "input"
    output = "output"
    in_out = "in/out"

    @property
    def can_read(self) -> bool:
        return self in (DeviceDirection.input, DeviceDirection.in_out)

    @property
    def can_write(self) -> bool:
        return self in (DeviceDirection.output, DeviceDirection.in_out)


class InterfaceKind(StrEnum):
    gpio = "gpio"
    ds18x20 = "ds18x20"
    dht11 = "dht11"
    dht22 = "dht22"
    simulated = "simulated"


class Signal(StrEnum):
    """Directional output of the hysteresis evaluator."""

    increase = "increase"
    decrease = "decrease"
    hold = "hold"
    indeterminate = "indeterminate"


class RuleDirection(StrEnum):
    increase = "increase"
    decrease = "decrease"


class PassMode(StrEnum):
    """How unresolved rule-graph decisions are treated during a control pass."""

    incremental_pass = "incrementalPass"
    reset_pass = "resetPass"


class SyncState(StrEnum):
    stale = "stale"
    refreshing = "refreshing"
    consistent = "consistent"


class SyncOperation(StrEnum):
    zone_updated = "zoneUpdated"
    device_updated = "deviceUpdated"
    device_created = "deviceCreated"
    device_removed = "deviceRemoved"


# Units reported when a reading carries none of its own.
DEFAULT_UNITS: dict[str, str] = {
    "temperature": "C",
    "humidity": "%",
    "on-off": "",
    "switch": "",
}
