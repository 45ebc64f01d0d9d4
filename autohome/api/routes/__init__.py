"""API route registration for Autohome."""

from fastapi import APIRouter

from . import system, zones

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(system.router, prefix="/system", tags=["system"])
api_router.include_router(zones.router, prefix="/zones", tags=["zones"])


__all__ = ["api_router", "system", "zones"]
