"""Rule graph evaluation: referenced-device signals into actuation decisions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from autohome.core.zone_manager import DeviceState, ZoneState
from autohome.models.enums import PassMode, Signal

logger = logging.getLogger(__name__)

_ACTIVE = frozenset({Signal.increase, Signal.decrease})


@dataclass(slots=True)
class ActuationDecision:
    """Outcome of the rule graph for one output-capable device."""

    zone_id: str
    device_id: str
    value: bool | None
    matched: list[str] = field(default_factory=list)
    reason: str = ""


class RuleEngine:
    """Aggregate directional signals through each output device's rules.

    A rule whose referenced device reports the rule's direction calls for
    the output to be on; decisions are OR-ed, so one match is enough.  A
    referenced device reporting the opposite direction votes off.  Hold and
    indeterminate signals vote nothing, leaving the decision unresolved
    (``None``) unless the pass is a ``resetPass``, where unresolved means off.
    """

    def decide(
        self,
        device: DeviceState,
        signals: Mapping[str, Signal],
        mode: PassMode = PassMode.incremental_pass,
    ) -> bool | None:
        return self._evaluate(device, signals, mode)[0]

    def evaluate_zone(
        self,
        zone: ZoneState,
        signals: Mapping[str, Signal],
        mode: PassMode = PassMode.incremental_pass,
    ) -> list[ActuationDecision]:
        decisions: list[ActuationDecision] = []
        for device in zone.devices.values():
            if not device.direction.can_write:
                continue
            value, matched = self._evaluate(device, signals, mode)
            if matched:
                reason = f"rules matched: {', '.join(matched)}"
            elif value is False and mode is PassMode.reset_pass:
                reason = "reset pass"
            elif value is False:
                reason = "referenced devices past target"
            else:
                reason = "no rule matched"
            decisions.append(
                ActuationDecision(
                    zone_id=zone.zone_id,
                    device_id=device.device_id,
                    value=value,
                    matched=matched,
                    reason=reason,
                )
            )
        return decisions

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @staticmethod
    def _evaluate(
        device: DeviceState,
        signals: Mapping[str, Signal],
        mode: PassMode,
    ) -> tuple[bool | None, list[str]]:
        decision: bool | None = None
        matched: list[str] = []
        for rule in device.rules:
            signal = signals.get(rule.device)
            if signal is None:
                continue
            if signal.value == rule.direction.value:
                matched.append(f"{rule.device}:{rule.direction.value}")
                decision = True
            elif signal in _ACTIVE and decision is None:
                decision = False
        if decision is None and mode is PassMode.reset_pass:
            decision = False
        logger.debug("Device %s decision=%s (%s)", device.device_id, decision, mode.value)
        return decision, matched


__all__ = ["ActuationDecision", "RuleEngine"]
