"""Health endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cortex.core.dependencies import ServiceContainer, get_container

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: ServiceContainer = Depends(get_container)) -> dict:
    cfg = container.config
    database_ok = container.database.verify_connection()
    return {
        "status": "ok" if database_ok else "degraded",
        "service": cfg.APP_NAME,
        "version": cfg.APP_VERSION,
        "database": "ok" if database_ok else "unavailable",
    }
