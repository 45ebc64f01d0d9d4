"""Runtime container wiring the controller's collaborators together."""

from __future__ import annotations

import logging
import signal
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]

from autohome.config import Settings
from autohome.core.actuators import ActuatorBinder, LineFailure
from autohome.core.control_loop import ControlLoop
from autohome.core.sync_engine import SyncEngine
from autohome.core.zone_manager import ZoneManager
from autohome.integrations.drivers import Driver, build_driver
from autohome.integrations.mqtt_client import MQTTClient
from autohome.integrations.remote_client import RemoteConfigClient
from autohome.models.enums import PassMode
from autohome.services.snapshot_service import SnapshotService
from autohome.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)


def _terminate_process() -> None:
    # uvicorn turns SIGTERM into a graceful shutdown; __main__ then exits non-zero.
    signal.raise_signal(signal.SIGTERM)


class Runtime:
    """Owns the zone store, the control loop and every transport client."""

    def __init__(
        self,
        settings: Settings,
        *,
        driver: Driver | None = None,
        remote: RemoteConfigClient | None = None,
        mqtt: MQTTClient | None = None,
        on_fatal: Callable[[], None] = _terminate_process,
    ) -> None:
        self.settings = settings
        self.driver = driver or build_driver(settings.driver)

        if remote is None and settings.remote_enabled:
            remote = RemoteConfigClient(
                settings.remote_url,
                settings.remote_api_key,
                timeout=settings.remote_timeout_s,
            )
        if mqtt is None and settings.mqtt_enabled:
            mqtt = MQTTClient(
                broker=settings.mqtt_broker,
                home_id=settings.home_id,
                port=settings.mqtt_port,
                username=settings.mqtt_username,
                password=settings.mqtt_password,
                use_tls=settings.mqtt_use_tls,
            )
        self.remote = remote
        self.mqtt = mqtt

        self.zones = ZoneManager(home_id=settings.home_id)
        self.snapshot = SnapshotService(
            settings.snapshot_path, fallback_path=settings.static_config_path
        )
        self.telemetry = TelemetryService(
            mqtt,
            settings.home_id,
            max_pending=settings.telemetry_max_pending,
            timeout_s=settings.telemetry_timeout_s,
        )
        self.binder = ActuatorBinder(self.driver)
        self.loop = ControlLoop(
            self.zones,
            self.binder,
            self.driver,
            self.telemetry,
            timezone=settings.timezone,
        )
        self.sync = SyncEngine(
            self.zones,
            home_id=settings.home_id,
            remote=remote,
            snapshot=self.snapshot,
            on_zone_changed=self.on_zone_changed,
        )

        self.scheduler: AsyncIOScheduler | None = None
        self.startup_time: datetime | None = None
        self.is_healthy = False
        self.fatal = False
        self._on_fatal = on_fatal
        self._safe_off_done = False

    @property
    def zone_ids(self) -> list[str]:
        return self.settings.managed_zone_ids or self.zones.zone_ids

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.zones.load(await self.snapshot.load())

        if self.remote is not None:
            await self.remote.connect()

        if self.mqtt is not None:
            # Registered up front so every (re)connect restores them; the
            # connection itself is retried in the background.
            self.mqtt.add_callback(self.sync.handle_event)
            await self.mqtt.subscribe_config()
            await self.mqtt.connect()

        states = await self.sync.refresh_all(self.zone_ids)
        logger.info(
            "Initial refresh: %s",
            ", ".join(f"{zone}={state.value}" for zone, state in states.items()) or "no zones",
        )

        # Every actuator reaches a known state before the periodic loop starts.
        await self.guarded(self.loop.run_all(PassMode.reset_pass, self.zone_ids))

        self.startup_time = datetime.now(UTC)
        self.is_healthy = not self.fatal

    async def stop(self) -> None:
        self.is_healthy = False
        if self.scheduler is not None:
            logger.info("Stopping background scheduler...")
            self.scheduler.shutdown(wait=True)
            self.scheduler = None

        await self.safe_off()
        await self.telemetry.drain()

        if self.mqtt is not None:
            logger.info("Disconnecting MQTT...")
            self.mqtt.remove_callback(self.sync.handle_event)
            await self.mqtt.disconnect()
        if self.remote is not None:
            await self.remote.disconnect()

    async def safe_off(self) -> list[LineFailure]:
        if self._safe_off_done:
            return []
        self._safe_off_done = True
        failures = await self.loop.shutdown(self.settings.shutdown_timeout_s)
        if failures:
            logger.error("%d actuator line(s) may not be off", len(failures))
        return failures

    # ------------------------------------------------------------------
    # Jobs and triggers
    # ------------------------------------------------------------------

    async def control_cycle(self) -> None:
        await self.guarded(self.loop.run_all(PassMode.incremental_pass, self.zone_ids))

    async def full_refresh(self) -> None:
        await self.guarded(self.sync.refresh_all(self.zone_ids))

    async def on_zone_changed(self, zone_id: str) -> None:
        await self.guarded(self.loop.request_pass(zone_id, PassMode.incremental_pass))

    async def guarded(self, job: Awaitable[object]) -> None:
        """Await *job*; any exception escaping it is a fatal defect."""
        try:
            await job
        except Exception as exc:
            await self.fail(exc)

    async def fail(self, exc: BaseException) -> None:
        if self.fatal:
            return
        self.fatal = True
        self.is_healthy = False
        logger.critical("Fatal control loop defect; switching actuators off", exc_info=exc)
        await self.safe_off()
        self._on_fatal()


class AppState:
    """Centralized application state container."""

    def __init__(self) -> None:
        self.runtime: Runtime | None = None


app_state = AppState()


__all__ = ["AppState", "Runtime", "app_state"]
