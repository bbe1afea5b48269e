from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from kouen_watch.models import AvailabilityRecord, AvailabilityStatus
from kouen_watch.runtime import get_notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


class CourtPayload(BaseModel):
    location: str
    court_label: str
    date: str
    time_slot: str
    status: str = AvailabilityStatus.AVAILABLE.value


class NotificationRequest(BaseModel):
    records: List[CourtPayload] = []
    timestamp: Optional[datetime] = None


@router.post("/send")
async def send_notification(payload: NotificationRequest) -> Dict[str, Any]:
    """Send an availability notification for the given courts."""
    if not payload.records:
        raise HTTPException(status_code=400, detail="没有需要通知的空位")
    observed_at = payload.timestamp or datetime.now()
    try:
        records = [
            AvailabilityRecord(
                location=item.location,
                court_label=item.court_label,
                date=item.date,
                time_slot=item.time_slot,
                status=AvailabilityStatus(item.status),
                observed_at=observed_at,
            )
            for item in payload.records
        ]
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    result = await get_notification_service().notify(records, observed_at)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error or "通知发送失败")
    return {
        "success": True,
        "method": result.method,
        "message": f"已发送 {len(records)} 条空位通知",
        "sent_at": datetime.now().isoformat(),
    }
