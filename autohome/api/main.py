"""
Autohome Controller API - Main Entry Point

FastAPI application hosting the zone control loop: lifespan wiring of the
zone store, sync engine and actuators, periodic jobs, and status routes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]
from fastapi import FastAPI

from autohome import __version__
from autohome.api.routes import api_router
from autohome.api.state import Runtime, app_state
from autohome.config import get_settings

# Configure logging
settings_instance = get_settings()
logging.basicConfig(
    level=logging.DEBUG if settings_instance.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# ============================================================================
# Scheduler
# ============================================================================


def init_scheduler(runtime: Runtime) -> AsyncIOScheduler:
    """Initialize the periodic control and refresh jobs."""
    settings = runtime.settings
    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": settings.cycle_seconds,
        },
    )

    scheduler.add_job(
        runtime.control_cycle,
        IntervalTrigger(seconds=settings.cycle_seconds),
        id="control_cycle",
        name="Control Cycle",
        replace_existing=True,
    )

    scheduler.add_job(
        runtime.full_refresh,
        IntervalTrigger(seconds=settings.refresh_seconds),
        id="full_refresh",
        name="Full Configuration Refresh",
        replace_existing=True,
    )

    return scheduler


# ============================================================================
# Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager for startup and shutdown.
    """
    logger.info("Starting Autohome controller...")
    runtime = Runtime(settings_instance)
    app_state.runtime = runtime

    try:
        await runtime.start()

        logger.info("Starting background scheduler...")
        runtime.scheduler = init_scheduler(runtime)
        runtime.scheduler.start()

        logger.info("Autohome startup complete (%d zone(s))", len(runtime.zone_ids))
    except Exception as e:
        logger.error("Startup failed: %s", e)
        await runtime.safe_off()
        raise

    yield

    logger.info("Shutting down Autohome controller...")
    await runtime.stop()
    logger.info("Autohome shutdown complete")


# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Autohome Controller API",
    description="Zone-based environmental control loop with remote configuration sync.",
    version=__version__,
    docs_url="/docs" if settings_instance.debug else None,
    redoc_url="/redoc" if settings_instance.debug else None,
    openapi_url="/openapi.json" if settings_instance.debug else None,
    lifespan=lifespan,
)

app.include_router(api_router)


__all__ = ["app", "init_scheduler", "lifespan"]
