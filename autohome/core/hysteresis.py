"""Hysteresis (bang-bang with dead band) evaluation of device readings."""

from __future__ import annotations

import logging

from autohome.core.zone_manager import DeviceState
from autohome.models.enums import Signal

logger = logging.getLogger(__name__)


def compare(
    current: float | bool | None,
    target: float | bool | None,
    threshold: float | None,
) -> Signal:
    """Classify *current* against ``target ± threshold``.

    Both band edges are inclusive: ``current <= target - t`` calls for an
    increase and ``current >= target + t`` for a decrease.  An exact match
    always holds, so a zero threshold still has a one-point dead band.
    """
    if current is None or target is None:
        return Signal.indeterminate
    t = threshold or 0.0
    value = float(current)
    goal = float(target)
    if value == goal:
        return Signal.hold
    if value <= goal - t:
        return Signal.increase
    if value >= goal + t:
        return Signal.decrease
    return Signal.hold


def evaluate(device: DeviceState) -> Signal:
    current = device.current.value if device.current is not None else None
    signal = compare(current, device.target, device.threshold)
    if signal is Signal.indeterminate:
        logger.info(
            "No decision possible for %s (current=%s target=%s)",
            device.device_id,
            current,
            device.target,
        )
    return signal


__all__ = ["compare", "evaluate"]
