from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kouen_watch.runtime import close_notification_service

from .routes import register_routes

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Tokyo Tennis Court Monitor API",
        description="API gateway for the Tokyo park tennis-court availability monitor",
        version="0.1.0",
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 监控器在第一次调用 /api/monitor/start 时创建
    app.state.monitor = None

    @app.on_event("shutdown")
    async def shutdown_event():
        """服务关闭时停止监控并释放 HTTP 客户端"""
        monitor = app.state.monitor
        if monitor is not None:
            monitor.stop()
            await monitor.session.close()
            app.state.monitor = None
        await close_notification_service()
        logger.info("API 服务已关闭")

    register_routes(app)
    return app


app = create_app()
