"""Tests for autohome.core.rule_engine: rule graph decisions."""

from __future__ import annotations

from autohome.core.rule_engine import RuleEngine
from autohome.core.zone_manager import DeviceState, ZoneState
from autohome.models.enums import DeviceDirection, PassMode, RuleDirection, Signal
from autohome.models.schemas import RuleRecord


def _output(device_id: str, *rules: tuple[str, str]) -> DeviceState:
    return DeviceState(
        device_id=device_id,
        direction=DeviceDirection.output,
        rules=[RuleRecord(device=ref, direction=RuleDirection(d)) for ref, d in rules],
    )


# ===================================================================
# decide
# ===================================================================


class TestDecide:
    def setup_method(self) -> None:
        self.engine = RuleEngine()

    def test_matching_rule_turns_output_on(self) -> None:
        furnace = _output("furnace", ("tempSensor", "increase"))
        assert self.engine.decide(furnace, {"tempSensor": Signal.increase}) is True

    def test_hold_is_unresolved_in_incremental_pass(self) -> None:
        furnace = _output("furnace", ("tempSensor", "increase"))
        assert self.engine.decide(furnace, {"tempSensor": Signal.hold}) is None

    def test_hold_is_off_in_reset_pass(self) -> None:
        furnace = _output("furnace", ("tempSensor", "increase"))
        decision = self.engine.decide(furnace, {"tempSensor": Signal.hold}, PassMode.reset_pass)
        assert decision is False

    def test_opposite_direction_turns_output_off(self) -> None:
        furnace = _output("furnace", ("tempSensor", "increase"))
        assert self.engine.decide(furnace, {"tempSensor": Signal.decrease}) is False

    def test_any_match_wins_over_opposite_votes(self) -> None:
        furnace = _output("furnace", ("hall", "increase"), ("bedroom", "increase"))
        signals = {"hall": Signal.decrease, "bedroom": Signal.increase}
        assert self.engine.decide(furnace, signals) is True

        furnace = _output("furnace", ("bedroom", "increase"), ("hall", "increase"))
        assert self.engine.decide(furnace, signals) is True

    def test_indeterminate_and_missing_signals_vote_nothing(self) -> None:
        furnace = _output("furnace", ("a", "increase"), ("b", "increase"))
        assert self.engine.decide(furnace, {"a": Signal.indeterminate}) is None

    def test_decrease_rule_drives_cooling(self) -> None:
        fan = _output("fan", ("tempSensor", "decrease"))
        assert self.engine.decide(fan, {"tempSensor": Signal.decrease}) is True
        assert self.engine.decide(fan, {"tempSensor": Signal.increase}) is False

    def test_no_rules(self) -> None:
        lamp = _output("lamp")
        assert self.engine.decide(lamp, {}) is None
        assert self.engine.decide(lamp, {}, PassMode.reset_pass) is False


# ===================================================================
# evaluate_zone
# ===================================================================


class TestEvaluateZone:
    def test_only_output_capable_devices_are_decided(self) -> None:
        zone = ZoneState(zone_id="living")
        zone.devices["tempSensor"] = DeviceState(device_id="tempSensor")
        zone.devices["furnace"] = _output("furnace", ("tempSensor", "increase"))
        zone.devices["combo"] = DeviceState(
            device_id="combo",
            direction=DeviceDirection.in_out,
            rules=[RuleRecord(device="tempSensor", direction=RuleDirection.increase)],
        )

        decisions = RuleEngine().evaluate_zone(zone, {"tempSensor": Signal.increase})

        assert [d.device_id for d in decisions] == ["furnace", "combo"]
        assert all(d.value is True for d in decisions)
        assert decisions[0].matched == ["tempSensor:increase"]
        assert decisions[0].zone_id == "living"

    def test_reset_reason(self) -> None:
        zone = ZoneState(zone_id="living")
        zone.devices["furnace"] = _output("furnace", ("tempSensor", "increase"))

        decisions = RuleEngine().evaluate_zone(zone, {}, PassMode.reset_pass)

        assert decisions[0].value is False
        assert decisions[0].reason == "reset pass"
