"""ASGI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI

from cortex.api.v1.router import get_api_router
from cortex.core.config import get_config
from cortex.core.startup import bootstrap


def create_app(run_bootstrap: bool = False) -> FastAPI:
    cfg = get_config()
    if run_bootstrap:
        bootstrap()
    app = FastAPI(title=cfg.APP_NAME, version=cfg.APP_VERSION)
    app.include_router(get_api_router())

    @app.get("/")
    def root() -> dict:
        return {"service": cfg.APP_NAME, "version": cfg.APP_VERSION, "api_prefix": cfg.API_PREFIX}

    return app


# Expose ASGI app for `uvicorn cortex.main:app`.
app = create_app()


if __name__ == "__main__":
    import uvicorn

    cfg = get_config()
    bootstrap()
    uvicorn.run("cortex.main:app", host=cfg.API_HOST, port=cfg.API_PORT)
