"""Tests for autohome.core.control_loop: end-to-end zone passes."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from autohome.core.actuators import ActuatorBinder
from autohome.core.control_loop import ControlLoop, ControlLoopError
from autohome.core.sync_engine import SyncEngine
from autohome.core.zone_manager import ZoneManager
from autohome.integrations.drivers import ReadError, SimulatedDriver
from autohome.integrations.mqtt_client import ConfigEvent
from autohome.models.enums import PassMode, Signal

MONDAY_7AM = datetime(2026, 10, 19, 7, 0, tzinfo=UTC)


def _loop(
    zones: ZoneManager, reader: object, driver: SimulatedDriver, telemetry: object = None
) -> ControlLoop:
    return ControlLoop(
        zones,
        ActuatorBinder(driver),
        reader,  # type: ignore[arg-type]
        telemetry,  # type: ignore[arg-type]
        clock=lambda: MONDAY_7AM,
    )


class _GatedReader:
    """Blocks the first read until released; counts every read."""

    def __init__(self) -> None:
        self.calls = 0
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def read(self, kind: str, address: str) -> float:
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        return 18.0


class _BrokenReader:
    async def read(self, kind: str, address: str) -> float:
        raise RuntimeError("driver bug")


# ===================================================================
# Single pass
# ===================================================================


class TestRunPass:
    async def test_cold_zone_turns_furnace_on(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)

        report = await loop.run_pass("living")

        state = zones.get_state("living")
        assert state is not None
        probe = state.devices["tempSensor"]
        assert probe.target == 20
        assert probe.current is not None
        assert probe.current.value == 18.0
        assert probe.current.unit == "C"
        assert probe.signal is Signal.increase
        assert state.devices["furnace"].last_decision is True
        assert driver.opened["17"].state is True
        assert driver.opened["27"].state is True
        assert report.targets == {"tempSensor": 20}
        assert report.failures == []

    async def test_calibration_offset_is_applied(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        probe = zones.get_state("living").devices["tempSensor"]  # type: ignore[union-attr]
        probe.calibration = -0.5
        await _loop(zones, driver, driver).run_pass("living")
        assert probe.current is not None
        assert probe.current.value == 17.5

    async def test_warm_zone_turns_furnace_off(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)
        await loop.run_pass("living")

        driver.set_reading("4", 21.0)
        await loop.run_pass("living")

        assert driver.opened["17"].state is False
        assert driver.opened["17"].writes == [True, False]

    async def test_dead_band_changes_nothing_until_reset(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        driver.set_reading("4", 20.5)
        loop = _loop(zones, driver, driver)

        report = await loop.run_pass("living")
        assert report.decisions[0].value is None
        assert driver.opened == {}

        await loop.run_pass("living", PassMode.reset_pass)
        assert driver.opened["17"].state is False

    async def test_read_failure_leaves_current_undefined(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        state = zones.get_state("living")
        assert state is not None
        reader = MagicMock()
        reader.read.side_effect = ReadError("no sensor")
        loop = _loop(zones, reader, driver)

        report = await loop.run_pass("living")

        assert state.devices["tempSensor"].current is None
        assert state.devices["tempSensor"].signal is Signal.indeterminate
        assert report.results == []

    async def test_write_failure_does_not_abort_pass(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)
        await loop.run_pass("living", PassMode.reset_pass)
        driver.opened["27"].fail = True

        report = await loop.run_pass("living")

        assert [f.address for f in report.failures] == ["27"]
        assert driver.opened["17"].state is True

    async def test_telemetry_for_readings_and_decisions(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        telemetry = MagicMock()
        await _loop(zones, driver, driver, telemetry).run_pass("living")

        state = zones.get_state("living")
        assert state is not None
        telemetry.publish_reading.assert_called_once_with("living", state.devices["tempSensor"])
        telemetry.publish_decision.assert_called_once()
        zone_id, device, value, _ = telemetry.publish_decision.call_args.args
        assert (zone_id, device.device_id, value) == ("living", "furnace", True)

    async def test_unknown_zone_is_empty_report(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        report = await _loop(zones, driver, driver).run_pass("attic")
        assert report.decisions == []

    async def test_unexpected_error_is_fatal(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, _BrokenReader(), driver)
        with pytest.raises(ControlLoopError):
            await loop.run_pass("living")


# ===================================================================
# Triggers and shutdown
# ===================================================================


class TestTriggers:
    async def test_trigger_during_pass_runs_afterwards(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        reader = _GatedReader()
        loop = _loop(zones, reader, driver)

        first = asyncio.create_task(loop.request_pass("living"))
        await reader.entered.wait()
        await loop.request_pass("living", PassMode.reset_pass)
        await loop.request_pass("living")
        reader.release.set()
        await first

        assert reader.calls == 2

    async def test_run_all_covers_every_zone(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)
        await loop.run_all(PassMode.reset_pass)
        assert driver.opened["17"].state is True

    async def test_run_all_limited_to_given_zones(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)
        await loop.run_all(PassMode.reset_pass, zone_ids=[])
        assert driver.opened == {}

    async def test_shutdown_switches_off_and_stops_actuating(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)
        await loop.run_pass("living")

        failures = await loop.shutdown(1.0)
        await loop.run_pass("living")

        assert failures == []
        assert driver.opened["17"].state is False
        assert driver.opened["27"].state is False

    async def test_shutdown_switches_off_outputs_never_actuated(
        self, zones: ZoneManager, driver: SimulatedDriver
    ) -> None:
        loop = _loop(zones, driver, driver)
        await loop.run_pass("living", PassMode.reset_pass)
        fan = {
            "id": "fan",
            "direction": "output",
            "type": "on-off",
            "interface": {"type": "gpio", "address": "22"},
        }
        sync = SyncEngine(zones, home_id="home-1")
        assert await sync.handle_event(
            ConfigEvent(zone_id="living", operation="deviceCreated", payload=fan)
        )

        failures = await loop.shutdown(1.0)

        assert failures == []
        assert driver.opened["22"].writes == [False]
        assert driver.opened["17"].state is False
        assert driver.opened["27"].state is False
