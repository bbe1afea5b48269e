from __future__ import annotations

from fastapi import APIRouter, FastAPI

from . import courts, monitor, notifications, system


def register_routes(app: FastAPI) -> None:
    """Attach all routers to FastAPI application."""
    api_router = APIRouter(prefix="/api")

    for router in (system.router, courts.router, monitor.router, notifications.router):
        api_router.include_router(router)

    app.include_router(api_router)
