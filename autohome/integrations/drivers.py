"""Sensor and actuator driver interfaces.

Physical drivers are opaque collaborators: a reader returns a raw value for
an ``(interface kind, address)`` pair and an actuator factory opens a handle
for one physical output line.  ``SimulatedDriver`` implements both against
in-memory state for development hosts without GPIO hardware.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class DriverError(Exception):
    """Base exception for driver failures."""


class ReadError(DriverError):
    """Raised when a sensor is unreachable or the read timed out."""


class WriteError(DriverError):
    """Raised when an actuator line could not be written."""


@runtime_checkable
class ActuatorHandle(Protocol):
    """A claimed physical output line."""

    address: str

    async def write(self, on: bool) -> None: ...


class SensorReader(Protocol):
    async def read(self, kind: str, address: str) -> float | bool: ...


class ActuatorFactory(Protocol):
    def open(self, kind: str, address: str) -> ActuatorHandle: ...


class Driver(SensorReader, ActuatorFactory, Protocol):
    """Combined reader + actuator factory handed to the control loop."""


# ---------------------------------------------------------------------------
# Simulated implementation
# ---------------------------------------------------------------------------


@dataclass(slots=True, eq=False)
class SimulatedActuator:
    address: str
    kind: str = "gpio"
    state: bool | None = None
    writes: list[bool] = field(default_factory=list)
    fail: bool = False

    async def write(self, on: bool) -> None:
        if self.fail:
            raise WriteError(f"simulated failure on line {self.address}")
        self.state = on
        self.writes.append(on)
        logger.info("Turning %s line %s", "ON" if on else "OFF", self.address)


class SimulatedDriver:
    """In-memory driver: readings are set by the caller, writes are recorded."""

    def __init__(self, readings: dict[str, float | bool] | None = None) -> None:
        self.readings: dict[str, float | bool] = dict(readings or {})
        self.opened: dict[str, SimulatedActuator] = {}
        self.open_count = 0

    def set_reading(self, address: str, value: float | bool) -> None:
        self.readings[address] = value

    async def read(self, kind: str, address: str) -> float | bool:
        try:
            return self.readings[address]
        except KeyError:
            raise ReadError(f"no {kind} sensor responding at {address}") from None

    def open(self, kind: str, address: str) -> SimulatedActuator:
        self.open_count += 1
        handle = SimulatedActuator(address=address, kind=kind)
        self.opened[address] = handle
        logger.debug("Claimed %s line %s", kind, address)
        return handle


def build_driver(name: str) -> Driver:
    """Return the driver selected by the ``driver`` setting."""
    if name == "simulated":
        return SimulatedDriver()
    raise ValueError(f"Unknown driver {name!r}")


__all__ = [
    "ActuatorFactory",
    "ActuatorHandle",
    "Driver",
    "DriverError",
    "ReadError",
    "SensorReader",
    "SimulatedActuator",
    "SimulatedDriver",
    "WriteError",
    "build_driver",
]
