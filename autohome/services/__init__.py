"""Autohome application services."""

from .snapshot_service import SnapshotService
from .telemetry_service import TelemetryService

__all__ = [
    "SnapshotService",
    "TelemetryService",
]
