from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

import config as CFG
from kouen_watch.models import MonitorConfig
from kouen_watch.runtime import build_orchestrator, build_session

router = APIRouter(prefix="/courts", tags=["courts"])


class CheckRequest(BaseModel):
    locations: List[str] = []
    time_slots: List[str] = []
    dates: List[str] = []


def build_config(payload: CheckRequest, **extra: Any) -> MonitorConfig:
    if not payload.locations or not payload.time_slots:
        raise HTTPException(status_code=400, detail="请至少选择一个公园和一个时间段")
    try:
        return MonitorConfig(
            locations=payload.locations,
            time_slots=payload.time_slots,
            dates=payload.dates,
            **extra,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/options")
async def court_options() -> Dict[str, Any]:
    """Selectable parks and time slots."""
    return {
        "parks": list(CFG.PARK_OPTIONS),
        "time_slots": list(CFG.TIME_SLOT_OPTIONS),
        "default_interval_minutes": CFG.DEFAULT_MONITOR.interval_minutes,
    }


@router.post("/check")
async def check_courts(payload: CheckRequest) -> Dict[str, Any]:
    """Run one check with a fresh session; failures come back as degraded records."""
    config = build_config(payload)
    orchestrator = build_orchestrator()
    async with build_session() as session:
        records = await orchestrator.run_check(config, session)
    return {
        "success": True,
        "availabilities": [record.to_dict() for record in records],
        "available_count": sum(1 for record in records if record.available),
        "checked_at": datetime.now().isoformat(),
        "last_error": orchestrator.last_error,
    }
