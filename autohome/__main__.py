"""Run the controller: ``python -m autohome``."""

from __future__ import annotations

import sys

import uvicorn

from autohome.api.state import app_state
from autohome.config import get_settings


def main() -> int:
    settings = get_settings()
    uvicorn.run(
        "autohome.api.main:app",
        host=settings.host,
        port=settings.port,
        loop="asyncio",
        log_level="debug" if settings.debug else settings.log_level,
        access_log=settings.debug,
    )
    runtime = app_state.runtime
    return 1 if runtime is not None and runtime.fatal else 0


if __name__ == "__main__":
    sys.exit(main())
