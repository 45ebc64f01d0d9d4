"""System-level FastAPI routes for Autohome."""

from __future__ import annotations

from fastapi import APIRouter

from autohome import __version__
from autohome.api.dependencies import SettingsDep

router = APIRouter()


@router.get("/health", response_model=dict[str, str])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/version", response_model=dict[str, str])
async def get_version(settings: SettingsDep) -> dict[str, str]:
    return {"name": settings.app_name, "version": __version__}


__all__ = ["router"]
