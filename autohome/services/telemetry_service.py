"""Best-effort telemetry publishing for readings and actuation decisions.

Each publish runs as its own task with a timeout.  At most
``max_pending`` publishes are in flight; beyond that new messages are
dropped.  Failures are logged and never reach the control loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from autohome.core.zone_manager import DeviceState
from autohome.integrations.mqtt_client import MQTTClient, telemetry_topic

logger = logging.getLogger(__name__)


class TelemetryService:
    """Publish device telemetry to ``homes/{home}/zones/{zone}/devices/{device}/{type}``."""

    def __init__(
        self,
        mqtt: MQTTClient | None,
        home_id: str,
        *,
        max_pending: int = 64,
        timeout_s: float = 5.0,
    ) -> None:
        self._mqtt = mqtt
        self._home_id = home_id
        self._max_pending = max_pending
        self._timeout = timeout_s
        self._tasks: set[asyncio.Task[None]] = set()
        self.dropped = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def publish_reading(self, zone_id: str, device: DeviceState) -> None:
        if device.current is None:
            return
        payload = self.build_payload(
            value=device.current.value,
            target=device.target,
            data={"unit": device.current.unit, "threshold": device.threshold},
            timestamp=device.current.timestamp,
        )
        topic = telemetry_topic(self._home_id, zone_id, device.device_id, device.type or "value")
        self._submit(topic, payload)

    def publish_decision(
        self, zone_id: str, device: DeviceState, value: bool, reason: str
    ) -> None:
        payload = self.build_payload(
            value=1 if value else 0,
            target=device.target,
            data={"reason": reason, "lines": device.addresses},
        )
        self._submit(telemetry_topic(self._home_id, zone_id, device.device_id, "on-off"), payload)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight publishes (used at shutdown)."""
        if not self._tasks:
            return
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout or self._timeout)
        for task in pending:
            task.cancel()

    @staticmethod
    def build_payload(
        *,
        value: Any,
        target: Any,
        data: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> dict[str, Any]:
        stamp = (timestamp or datetime.now(UTC)).astimezone(UTC)
        return {
            "time": stamp.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "value": value,
            "target": target,
            "data": data or {},
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _submit(self, topic: str, payload: dict[str, Any]) -> None:
        if self._mqtt is None or not self._mqtt.connected:
            logger.debug("Broker unavailable; dropping telemetry for %s", topic)
            return
        if len(self._tasks) >= self._max_pending:
            self.dropped += 1
            logger.warning("Telemetry backlog full (%d); dropping %s", self._max_pending, topic)
            return
        task = asyncio.create_task(self._publish(topic, payload), name=f"telemetry:{topic}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _publish(self, topic: str, payload: dict[str, Any]) -> None:
        assert self._mqtt is not None  # noqa: S101 - checked by _submit
        try:
            async with asyncio.timeout(self._timeout):
                await self._mqtt.publish(topic, payload, qos=1, retain=True)
        except TimeoutError:
            logger.warning("Telemetry publish to %s timed out after %.1fs", topic, self._timeout)
        except Exception as exc:
            logger.warning("Telemetry publish to %s failed: %s", topic, exc)


__all__ = ["TelemetryService"]
