"""Integration tests for zone API routes (/api/v1/zones).

Runs against a runtime built on the simulated driver, with no remote
authority and no broker configured.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from autohome.api.state import Runtime
from autohome.core.control_loop import ControlLoopError
from autohome.integrations.drivers import SimulatedDriver


@pytest.mark.asyncio
async def test_list_zones(client: AsyncClient) -> None:
    response = await client.get("/api/v1/zones")
    assert response.status_code == 200
    data = response.json()
    assert [zone["zone_id"] for zone in data] == ["living"]
    assert data[0]["sync_state"] == "stale"
    assert {device["id"] for device in data[0]["devices"]} == {"tempSensor", "furnace"}


@pytest.mark.asyncio
async def test_get_zone(client: AsyncClient) -> None:
    response = await client.get("/api/v1/zones/living")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Living Room"
    probe = next(d for d in data["devices"] if d["id"] == "tempSensor")
    assert probe["unit"] == "C"
    assert probe["current"] is None


@pytest.mark.asyncio
async def test_get_unknown_zone_returns_404(client: AsyncClient) -> None:
    response = await client.get("/api/v1/zones/attic")
    assert response.status_code == 404
    assert response.json()["detail"] == "Zone not found"


@pytest.mark.asyncio
async def test_refresh_without_remote_is_consistent(client: AsyncClient) -> None:
    response = await client.post("/api/v1/zones/living/refresh")
    assert response.status_code == 200
    assert response.json() == {"zone_id": "living", "sync_state": "consistent"}


@pytest.mark.asyncio
async def test_reset_runs_a_pass(client: AsyncClient, driver: SimulatedDriver) -> None:
    response = await client.post("/api/v1/zones/living/reset")
    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "resetPass"
    assert data["targets"] == {"tempSensor": 20}
    assert data["decisions"] == [
        {"device_id": "furnace", "value": True, "reason": "rules matched: tempSensor:increase"}
    ]
    assert data["failures"] == []
    assert driver.opened["17"].state is True

    after = await client.get("/api/v1/zones/living")
    probe = next(d for d in after.json()["devices"] if d["id"] == "tempSensor")
    assert probe["current"] == 18.0
    assert probe["signal"] == "increase"


@pytest.mark.asyncio
async def test_reset_reports_line_failures(client: AsyncClient, driver: SimulatedDriver) -> None:
    await client.post("/api/v1/zones/living/reset")
    driver.opened["27"].fail = True

    response = await client.post("/api/v1/zones/living/reset")

    assert response.status_code == 200
    assert [f["address"] for f in response.json()["failures"]] == ["27"]


@pytest.mark.asyncio
async def test_reset_defect_runs_safe_shutdown(client: AsyncClient, runtime: Runtime) -> None:
    failing = AsyncMock(side_effect=ControlLoopError("boom"))
    runtime.loop.run_pass = failing  # type: ignore[method-assign]

    response = await client.post("/api/v1/zones/living/reset")

    assert response.status_code == 500
    assert runtime.fatal is True
    runtime._on_fatal.assert_called_once()  # type: ignore[attr-defined]
