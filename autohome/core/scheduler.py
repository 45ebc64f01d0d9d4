"""Schedule and override resolution into per-device targets."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from autohome.models.schemas import ChangeRecord, OverrideRecord, ScheduleRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScheduleEntry:
    days: frozenset[int]  # 0 = Sunday .. 6 = Saturday
    start: int  # minutes since midnight
    changes: list[ChangeRecord] = field(default_factory=list)


class Scheduler:
    """Resolve a zone's schedules and active overrides into device targets.

    Entries are sorted ascending by start time on construction.  Resolution
    walks today's entries in that order and stops at the first one whose
    start has not been reached yet.
    """

    def __init__(
        self,
        schedules: Iterable[ScheduleRecord],
        overrides: Iterable[OverrideRecord] = (),
    ) -> None:
        self._entries = _build_entries(schedules)
        self._overrides = list(overrides)

    def resolve_targets(self, now: datetime) -> dict[str, float | bool]:
        """Return ``device id -> desired value`` for *now*.

        Schedule changes apply in ascending start order (later overwrite
        earlier); active overrides then overwrite unconditionally, the last
        one in stored order winning.  Devices nothing mentions are absent.
        """
        targets: dict[str, float | bool] = {}
        day = self.handle_day_of_week(now)
        minutes = now.hour * 60 + now.minute

        for entry in self._entries:
            if day not in entry.days:
                continue
            if entry.start > minutes:
                break
            for change in entry.changes:
                targets[change.device] = change.value

        instant = now if now.tzinfo is not None else now.replace(tzinfo=UTC)
        for override in self._overrides:
            if override.is_active(instant):
                for change in override.changes:
                    targets[change.device] = change.value

        return targets

    @staticmethod
    def handle_day_of_week(now: datetime) -> int:
        """Day index with Sunday as 0, the convention used by schedule records."""
        return (now.weekday() + 1) % 7


def _parse_time(value: str) -> int:
    hour, minute = value.split(":")[:2]
    return int(hour) * 60 + int(minute)


def _build_entries(schedules: Iterable[ScheduleRecord]) -> list[ScheduleEntry]:
    entries = [
        ScheduleEntry(
            days=frozenset(schedule.days),
            start=_parse_time(schedule.start),
            changes=list(schedule.changes),
        )
        for schedule in schedules
    ]
    # Stable: equal start times keep their stored order.
    entries.sort(key=lambda e: e.start)
    return entries


def resolve_targets(
    schedules: Iterable[ScheduleRecord],
    overrides: Iterable[OverrideRecord],
    now: datetime,
) -> dict[str, float | bool]:
    return Scheduler(schedules, overrides).resolve_targets(now)


__all__ = ["ScheduleEntry", "Scheduler", "resolve_targets"]
