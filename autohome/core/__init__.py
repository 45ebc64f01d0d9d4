"""Core control and synchronization logic for Autohome."""

from __future__ import annotations

from .actuators import ActuationResult, ActuatorBinder, LineFailure
from .control_loop import ControlLoop, ControlLoopError, PassReport
from .rule_engine import ActuationDecision, RuleEngine
from .scheduler import ScheduleEntry, Scheduler, resolve_targets
from .sync_engine import MergeError, SyncEngine, SyncError
from .zone_manager import DeviceState, Reading, ZoneManager, ZoneState

__all__ = [
    "ActuationDecision",
    "ActuationResult",
    "ActuatorBinder",
    "ControlLoop",
    "ControlLoopError",
    "DeviceState",
    "LineFailure",
    "MergeError",
    "PassReport",
    "Reading",
    "RuleEngine",
    "ScheduleEntry",
    "Scheduler",
    "SyncEngine",
    "SyncError",
    "ZoneManager",
    "ZoneState",
    "resolve_targets",
]
