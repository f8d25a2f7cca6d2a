"""Root API router for v1 endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from cortex.api.v1 import appointments, events, health, leads, settings
from cortex.core.config import get_config

api_router = APIRouter(prefix=get_config().API_PREFIX)
api_router.include_router(health.router)
api_router.include_router(events.router)
api_router.include_router(appointments.router)
api_router.include_router(settings.router)
api_router.include_router(leads.router)


def get_api_router() -> APIRouter:
    return api_router
