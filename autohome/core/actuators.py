"""Actuator handle registry and serialized per-line writes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from autohome.core.zone_manager import DeviceState
from autohome.integrations.drivers import ActuatorFactory, ActuatorHandle, WriteError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LineFailure:
    address: str
    error: str


@dataclass(slots=True)
class ActuationResult:
    device_id: str
    value: bool
    succeeded: list[str] = field(default_factory=list)
    failed: list[LineFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class ActuatorBinder:
    """Own one handle per physical address and reuse it across reloads.

    ``bind`` is idempotent: a device whose addresses are unchanged gets the
    very same handle objects back.  Handles for addresses no device declares
    any more stay registered (orphaned) and are still driven off at shutdown.
    Writes to one address are serialized by a per-address lock.
    """

    def __init__(self, factory: ActuatorFactory, *, write_timeout_s: float = 10.0) -> None:
        self._factory = factory
        self._write_timeout = write_timeout_s
        self._registry: dict[str, ActuatorHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def handles(self) -> dict[str, ActuatorHandle]:
        return dict(self._registry)

    def bind(self, device: DeviceState) -> dict[str, ActuatorHandle]:
        if not device.direction.can_write or device.interface is None:
            return {}

        kind = device.interface.type
        bound: dict[str, ActuatorHandle] = {}
        for address in device.addresses:
            handle = device.handles.get(address) or self._registry.get(address)
            if handle is None:
                handle = self._factory.open(kind, address)
                logger.info("Bound new %s handle for %s on %s", kind, device.device_id, address)
            self._registry[address] = handle
            bound[address] = handle
        device.handles = bound
        return bound

    def orphaned(self, declared: set[str]) -> list[str]:
        """Registered addresses that none of *declared* claims any more."""
        return sorted(address for address in self._registry if address not in declared)

    async def actuate(
        self,
        device_id: str,
        handles: dict[str, ActuatorHandle],
        value: bool,
    ) -> ActuationResult:
        """Write *value* to every line concurrently; failures are per line."""
        result = ActuationResult(device_id=device_id, value=value)
        if not handles:
            return result

        addresses = list(handles)
        outcomes = await asyncio.gather(
            *(self._write(address, handles[address], value) for address in addresses),
            return_exceptions=True,
        )
        for address, outcome in zip(addresses, outcomes, strict=True):
            if isinstance(outcome, (WriteError, TimeoutError)):
                logger.warning(
                    "Write %s to line %s for %s failed: %s",
                    "ON" if value else "OFF",
                    address,
                    device_id,
                    str(outcome) or "timed out",
                )
                result.failed.append(LineFailure(address=address, error=str(outcome) or "timeout"))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.succeeded.append(address)
        return result

    async def shutdown(self, timeout: float) -> list[LineFailure]:
        """Drive every registered line off within *timeout* seconds.

        Individual failures are logged and collected; nothing raises.
        """
        failures: list[LineFailure] = []
        if not self._registry:
            return failures

        logger.info("Switching %d actuator line(s) off", len(self._registry))
        tasks = {
            address: asyncio.create_task(self._write(address, handle, False))
            for address, handle in self._registry.items()
        }
        _, pending = await asyncio.wait(tasks.values(), timeout=timeout)
        for address, task in tasks.items():
            if task in pending:
                task.cancel()
                logger.error("Line %s did not switch off within %.1fs", address, timeout)
                failures.append(LineFailure(address=address, error="timeout"))
            elif task.exception() is not None:
                logger.error("Line %s failed to switch off: %s", address, task.exception())
                failures.append(LineFailure(address=address, error=str(task.exception())))
        return failures

    async def _write(self, address: str, handle: ActuatorHandle, value: bool) -> None:
        lock = self._locks.setdefault(address, asyncio.Lock())
        async with lock:
            async with asyncio.timeout(self._write_timeout):
                await handle.write(value)


__all__ = ["ActuationResult", "ActuatorBinder", "LineFailure"]
