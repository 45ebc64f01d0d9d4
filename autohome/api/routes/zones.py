"""Zone status and trigger API routes for Autohome."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from autohome.api.dependencies import RuntimeDep
from autohome.api.state import Runtime
from autohome.core.control_loop import ControlLoopError
from autohome.core.zone_manager import ZoneState
from autohome.models.enums import PassMode
from autohome.models.schemas import ZoneSummary

logger = logging.getLogger(__name__)

router = APIRouter()


def _summary(state: ZoneState) -> ZoneSummary:
    return ZoneSummary(
        zone_id=state.zone_id,
        name=state.name,
        sync_state=state.sync_state.value,
        version=state.version,
        last_refresh_at=state.last_refresh_at,
        devices=[device.summary() for device in state.devices.values()],
    )


def _require_zone(runtime: Runtime, zone_id: str) -> ZoneState:
    state = runtime.zones.get_state(zone_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Zone not found")
    return state


@router.get("", response_model=list[ZoneSummary])
async def list_zones(runtime: RuntimeDep) -> list[ZoneSummary]:
    return [_summary(state) for state in runtime.zones.iter_states()]


@router.get("/{zone_id}", response_model=ZoneSummary)
async def get_zone(zone_id: str, runtime: RuntimeDep) -> ZoneSummary:
    return _summary(_require_zone(runtime, zone_id))


@router.post("/{zone_id}/refresh", response_model=dict[str, str])
async def refresh_zone(zone_id: str, runtime: RuntimeDep) -> dict[str, str]:
    """Pull the zone from the remote authority now."""
    _require_zone(runtime, zone_id)
    sync_state = await runtime.sync.full_refresh(zone_id)
    return {"zone_id": zone_id, "sync_state": sync_state.value}


@router.post("/{zone_id}/reset")
async def reset_zone(zone_id: str, runtime: RuntimeDep) -> dict[str, Any]:
    """Run one reset pass: every unresolved actuator is commanded off."""
    _require_zone(runtime, zone_id)
    try:
        report = await runtime.loop.run_pass(zone_id, PassMode.reset_pass)
    except ControlLoopError as exc:
        await runtime.fail(exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Control pass failed",
        ) from exc

    logger.info("Reset pass for zone %s: %d decision(s)", zone_id, len(report.decisions))
    return {
        "zone_id": zone_id,
        "mode": report.mode.value,
        "version": report.version,
        "targets": report.targets,
        "decisions": [
            {"device_id": d.device_id, "value": d.value, "reason": d.reason}
            for d in report.decisions
        ],
        "failures": [{"address": f.address, "error": f.error} for f in report.failures],
    }


__all__ = ["router"]
