from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

import config as CFG
from kouen_watch.monitor import PollScheduler
from kouen_watch.runtime import build_scheduler

from .courts import CheckRequest, build_config

router = APIRouter(prefix="/monitor", tags=["monitor"])


class MonitorStartRequest(CheckRequest):
    interval_minutes: Optional[int] = None


def get_scheduler(request: Request) -> PollScheduler:
    monitor = request.app.state.monitor
    if monitor is None:
        monitor = build_scheduler()
        request.app.state.monitor = monitor
    return monitor


@router.post("/start")
async def start_monitor(payload: MonitorStartRequest, request: Request) -> Dict[str, Any]:
    interval = payload.interval_minutes or CFG.DEFAULT_MONITOR.interval_minutes
    config = build_config(payload, interval_minutes=interval)
    scheduler = get_scheduler(request)
    if scheduler.running:
        raise HTTPException(status_code=409, detail="监控已在运行，请先停止")
    await scheduler.start(config)
    return {"success": True, "message": f"监控已启动，每 {config.interval_minutes} 分钟检查一次", "status": scheduler.status()}


@router.post("/stop")
async def stop_monitor(request: Request) -> Dict[str, Any]:
    scheduler = request.app.state.monitor
    if scheduler is None or not scheduler.running:
        return {"success": False, "message": "监控未在运行"}
    scheduler.stop()
    return {"success": True, "message": "监控已停止", "status": scheduler.status()}


@router.get("/status")
async def monitor_status(request: Request) -> Dict[str, Any]:
    scheduler = request.app.state.monitor
    if scheduler is None:
        return {"state": "stopped", "active": False, "check_count": 0, "notifications": []}
    return scheduler.status()
