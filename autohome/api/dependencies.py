"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status

from autohome.api.state import Runtime, app_state
from autohome.config import SETTINGS, Settings

# ---------------------------------------------------------------------------
# Settings dependency
# ---------------------------------------------------------------------------


def get_settings_dependency() -> Settings:
    return SETTINGS


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# ---------------------------------------------------------------------------
# Runtime dependency
# ---------------------------------------------------------------------------


def get_runtime() -> Runtime:
    if app_state.runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Controller not started",
        )
    return app_state.runtime


RuntimeDep = Annotated[Runtime, Depends(get_runtime)]


__all__ = ["RuntimeDep", "SettingsDep", "get_runtime", "get_settings_dependency"]
