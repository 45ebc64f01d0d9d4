from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from autohome.api.dependencies import get_runtime
from autohome.api.main import app
from autohome.api.state import Runtime
from autohome.config import Settings
from autohome.core.zone_manager import ZoneManager
from autohome.integrations.drivers import SimulatedDriver
from autohome.integrations.mqtt_client import MQTTClient
from autohome.models.schemas import HomeConfig

HOME_ID = "home-1"
ZONE_ID = "living"


def zone_payload() -> dict[str, object]:
    """A zone with one temperature probe driving a two-line furnace."""
    return {
        "id": ZONE_ID,
        "name": "Living Room",
        "@etag": "v1",
        "schedules": [
            {
                "days": [0, 1, 2, 3, 4, 5, 6],
                "start": "00:00",
                "changes": [{"device": "tempSensor", "value": 20}],
            }
        ],
        "overrides": [],
        "devices": [
            {
                "id": "tempSensor",
                "name": "Probe",
                "direction": "input",
                "type": "temperature",
                "interface": {"type": "ds18x20", "address": "4"},
                "threshold": 1,
            },
            {
                "id": "furnace",
                "name": "Furnace",
                "direction": "output",
                "type": "on-off",
                "interface": {"type": "gpio", "address": ["17", "27"]},
                "rules": [{"device": "tempSensor", "direction": "increase"}],
            },
        ],
    }


@pytest.fixture
def zone_data() -> dict[str, object]:
    return zone_payload()


@pytest.fixture
def home_config() -> HomeConfig:
    return HomeConfig.model_validate({"home": HOME_ID, "zones": [zone_payload()]})


@pytest.fixture
async def zones(home_config: HomeConfig) -> ZoneManager:
    manager = ZoneManager(home_id=HOME_ID)
    await manager.load(home_config)
    return manager


@pytest.fixture
def driver() -> SimulatedDriver:
    return SimulatedDriver({"4": 18.0})


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        home_id=HOME_ID,
        snapshot_path=str(tmp_path / "snapshot.json"),
        static_config_path=str(tmp_path / "zones.json"),
        remote_url="",
        mqtt_broker="",
        shutdown_timeout_s=1.0,
    )


@pytest.fixture
async def runtime(
    settings: Settings, driver: SimulatedDriver, home_config: HomeConfig
) -> Runtime:
    rt = Runtime(settings, driver=driver, on_fatal=MagicMock())
    await rt.zones.load(home_config)
    return rt


@pytest.fixture
async def client(runtime: Runtime) -> AsyncGenerator[AsyncClient]:
    app.dependency_overrides[get_runtime] = lambda: runtime
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_runtime, None)


class FakeBroker:
    """Stands in for the broker connection; refuses connects until ``up``."""

    def __init__(self, client: MQTTClient) -> None:
        self.client = client
        self.up = False
        self.attempts = 0
        self.session = MagicMock()
        self.session.subscribe = AsyncMock()
        self.session.publish = AsyncMock()

    async def open(self) -> None:
        self.attempts += 1
        if not self.up:
            raise OSError("connection refused")
        self.client._client = self.session
        self.client._connected.set()

    def subscribed_topics(self) -> set[str]:
        return {call.args[0] for call in self.session.subscribe.call_args_list}


@pytest.fixture
async def broker() -> AsyncGenerator[FakeBroker]:
    mqtt = MQTTClient(broker="localhost", home_id=HOME_ID)
    mqtt._RECONNECT_DELAYS = (0.01,)  # type: ignore[assignment]
    mqtt._POLL_INTERVAL = 0.01
    fake = FakeBroker(mqtt)
    mqtt._open_connection = fake.open  # type: ignore[method-assign]
    mqtt._message_loop = AsyncMock()  # type: ignore[method-assign]
    yield fake
    await mqtt.disconnect()
