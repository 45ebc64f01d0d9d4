from __future__ import annotations

import pytest

from autohome.core.hysteresis import compare, evaluate
from autohome.core.zone_manager import DeviceState, Reading
from autohome.models.enums import Signal


@pytest.mark.parametrize(
    ("current", "target", "threshold", "expected"),
    [
        (17, 20, 2, Signal.increase),
        (18, 20, 2, Signal.increase),  # lower edge inclusive
        (22, 20, 2, Signal.decrease),  # upper edge inclusive
        (19, 20, 2, Signal.hold),
        (21.9, 20, 2, Signal.hold),
        (20, 20, 0, Signal.hold),
        (19.5, 20, 0, Signal.increase),
        (20.5, 20, 0, Signal.decrease),
        (19.5, 20, None, Signal.increase),
    ],
)
def test_compare(current: float, target: float, threshold: float | None, expected: Signal) -> None:
    assert compare(current, target, threshold) is expected


def test_missing_values_are_indeterminate() -> None:
    assert compare(None, 20, 1) is Signal.indeterminate
    assert compare(20, None, 1) is Signal.indeterminate


def test_boolean_targets() -> None:
    assert compare(False, True, 0) is Signal.increase
    assert compare(True, True, 0) is Signal.hold


def test_evaluate_reads_device_state() -> None:
    device = DeviceState(device_id="probe", threshold=2, target=20)
    device.current = Reading(value=17.0, unit="C")
    assert evaluate(device) is Signal.increase


def test_evaluate_without_reading_logs(caplog: pytest.LogCaptureFixture) -> None:
    device = DeviceState(device_id="probe", target=20)
    with caplog.at_level("INFO", logger="autohome.core.hysteresis"):
        assert evaluate(device) is Signal.indeterminate
    assert "No decision possible for probe" in caplog.text
