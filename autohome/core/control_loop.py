"""Zone control pass orchestration.

One pass over a zone runs: schedule resolution -> sensor reads ->
hysteresis -> rule graph -> actuation -> telemetry.  Passes for one zone
are mutually exclusive; different zones run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from autohome.core import hysteresis
from autohome.core.actuators import ActuationResult, ActuatorBinder, LineFailure
from autohome.core.rule_engine import ActuationDecision, RuleEngine
from autohome.core.scheduler import Scheduler
from autohome.core.zone_manager import DeviceState, Reading, ZoneManager, ZoneState
from autohome.integrations.drivers import ReadError, SensorReader
from autohome.models.enums import PassMode, Signal

if TYPE_CHECKING:
    from autohome.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)


class ControlLoopError(RuntimeError):
    """Unexpected defect inside a control pass.  Not recoverable locally."""


@dataclass(slots=True)
class PassReport:
    zone_id: str
    mode: PassMode
    version: int = 0
    targets: dict[str, float | bool] = field(default_factory=dict)
    decisions: list[ActuationDecision] = field(default_factory=list)
    results: list[ActuationResult] = field(default_factory=list)

    @property
    def failures(self) -> list[LineFailure]:
        return [failure for result in self.results for failure in result.failed]


class ControlLoop:
    """Run control passes for the zones held by a ``ZoneManager``.

    ``run_pass`` executes exactly one pass and returns its report.
    ``request_pass`` is the trigger used by the periodic timer and by
    incremental updates: while a pass for the zone is in flight, further
    requests are coalesced into one follow-up pass (a reset request
    dominates an incremental one), so no trigger is ever lost.
    """

    def __init__(
        self,
        zones: ZoneManager,
        binder: ActuatorBinder,
        reader: SensorReader,
        telemetry: TelemetryService | None = None,
        *,
        rule_engine: RuleEngine | None = None,
        timezone: str = "UTC",
        read_timeout_s: float = 10.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._zones = zones
        self._binder = binder
        self._reader = reader
        self._telemetry = telemetry
        self._rules = rule_engine or RuleEngine()
        self._tz = ZoneInfo(timezone)
        self._read_timeout = read_timeout_s
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, PassMode] = {}
        self._running: set[str] = set()
        self._stopped = False

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def run_pass(
        self, zone_id: str, mode: PassMode = PassMode.incremental_pass
    ) -> PassReport:
        lock = self._locks.setdefault(zone_id, asyncio.Lock())
        async with lock:
            try:
                return await self._pass(zone_id, mode)
            except ControlLoopError:
                raise
            except Exception as exc:
                raise ControlLoopError(f"control pass for zone {zone_id} failed: {exc}") from exc

    async def request_pass(
        self, zone_id: str, mode: PassMode = PassMode.incremental_pass
    ) -> None:
        if self._pending.get(zone_id) is not PassMode.reset_pass:
            self._pending[zone_id] = mode
        if zone_id in self._running:
            logger.debug("Pass for zone %s in flight; queued %s", zone_id, mode.value)
            return

        self._running.add(zone_id)
        try:
            while zone_id in self._pending:
                await self.run_pass(zone_id, self._pending.pop(zone_id))
        finally:
            self._running.discard(zone_id)

    async def run_all(
        self,
        mode: PassMode = PassMode.incremental_pass,
        zone_ids: Iterable[str] | None = None,
    ) -> None:
        """Request a pass for *zone_ids*, every stored zone when omitted."""
        targets = list(zone_ids) if zone_ids is not None else self._zones.zone_ids
        await asyncio.gather(*(self.request_pass(zone_id, mode) for zone_id in targets))

    async def shutdown(self, timeout: float) -> list[LineFailure]:
        """Stop actuating and drive every actuator line off.

        Every writable device is bound first, so outputs that no decision
        has touched yet are switched off along with orphaned lines.
        """
        self._stopped = True
        for state in self._zones.iter_states():
            for device in state.devices.values():
                self._binder.bind(device)
        return await self._binder.shutdown(timeout)

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    async def _pass(self, zone_id: str, mode: PassMode) -> PassReport:
        report = PassReport(zone_id=zone_id, mode=mode)
        state = self._zones.get_state(zone_id)
        if state is None:
            logger.warning("Control pass requested for unknown zone %s", zone_id)
            return report
        report.version = state.version

        scheduler = Scheduler(state.schedules, state.overrides)
        report.targets = scheduler.resolve_targets(self._clock())
        for device in state.devices.values():
            device.target = report.targets.get(device.device_id)

        inputs = [device for device in state.devices.values() if device.direction.can_read]
        await asyncio.gather(*(self._read(state, device) for device in inputs))

        signals: dict[str, Signal] = {}
        for device in inputs:
            device.signal = hysteresis.evaluate(device)
            signals[device.device_id] = device.signal

        report.decisions = self._rules.evaluate_zone(state, signals, mode)
        actionable = [decision for decision in report.decisions if decision.value is not None]
        outcomes = await asyncio.gather(*(self._actuate(state, d) for d in actionable))
        report.results = [result for result in outcomes if result is not None]

        logger.debug(
            "Zone %s %s pass: %d target(s), %d actuation(s), %d line failure(s)",
            zone_id,
            mode.value,
            len(report.targets),
            len(report.results),
            len(report.failures),
        )
        return report

    async def _read(self, state: ZoneState, device: DeviceState) -> None:
        if device.interface is None or not device.addresses:
            device.current = None
            return
        address = device.addresses[0]
        try:
            async with asyncio.timeout(self._read_timeout):
                raw = await self._reader.read(device.interface.type, address)
        except (ReadError, TimeoutError) as exc:
            logger.warning(
                "Reading %s on %s failed: %s",
                device.device_id,
                address,
                str(exc) or "timed out",
            )
            device.current = None
            return

        value = raw if isinstance(raw, bool) else float(raw) + device.calibration
        device.current = Reading(value=value, unit=device.default_unit)
        if self._telemetry is not None:
            self._telemetry.publish_reading(state.zone_id, device)

    async def _actuate(
        self, state: ZoneState, decision: ActuationDecision
    ) -> ActuationResult | None:
        device = state.devices.get(decision.device_id)
        if device is None or decision.value is None:
            return None
        if self._stopped:
            logger.info("Shutting down; not actuating %s", device.device_id)
            return None

        handles = self._binder.bind(device)
        result = await self._binder.actuate(device.device_id, handles, decision.value)
        device.last_decision = decision.value
        if self._telemetry is not None:
            self._telemetry.publish_decision(
                state.zone_id, device, decision.value, decision.reason
            )
        return result


__all__ = ["ControlLoop", "ControlLoopError", "PassReport"]
