from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request

import config as CFG

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """Return basic application health information."""
    monitor = request.app.state.monitor
    return {
        "status": "ok",
        "time": datetime.now().isoformat(),
        "monitor": monitor.state.value if monitor is not None else "stopped",
        "credentials_configured": bool(CFG.USER_ID and CFG.PASSWORD),
    }
