"""Builders that wire engine objects and the notification singleton from the top-level config module."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from .auth import SessionManager
from .monitor import PollScheduler
from .notification import NotificationService
from .parser import AvailabilityParser
from .service import CheckOrchestrator


def _config(cfg: Any = None) -> Any:
    if cfg is not None:
        return cfg
    import config as CFG  # pylint: disable=import-outside-toplevel

    return CFG


def build_session(
    cfg: Any = None,
    *,
    identifier: Optional[str] = None,
    secret: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SessionManager:
    cfg = _config(cfg)
    return SessionManager(
        cfg.LOGIN_URL,
        identifier if identifier is not None else cfg.USER_ID,
        secret if secret is not None else cfg.PASSWORD,
        rules=cfg.LOGIN_RULES,
        identifier_field=cfg.IDENTIFIER_FIELD,
        secret_field=cfg.SECRET_FIELD,
        timeout=cfg.TIMEOUT_SECONDS,
        user_agent=cfg.USER_AGENT,
        max_redirects=cfg.MAX_REDIRECTS,
        transport=transport,
    )


def build_orchestrator(cfg: Any = None) -> CheckOrchestrator:
    cfg = _config(cfg)
    parser = AvailabilityParser(
        court_designators=cfg.COURT_DESIGNATORS,
        open_markers=cfg.OPEN_MARKERS,
        closed_markers=cfg.CLOSED_MARKERS,
        empty_label=cfg.EMPTY_RESULT_LABEL,
    )
    return CheckOrchestrator(parser, target_keywords=cfg.TARGET_LINK_KEYWORDS)


def build_scheduler(cfg: Any = None, *, session: Optional[SessionManager] = None) -> PollScheduler:
    cfg = _config(cfg)
    notifier = get_notification_service().notify if cfg.ENABLE_NOTIFICATION else None
    return PollScheduler(build_orchestrator(cfg), session or build_session(cfg), notifier=notifier)


# Global notification instance -------------------------------------------------
_notification_service: Optional[NotificationService] = None


def build_notification_service(cfg: Any = None) -> NotificationService:
    cfg = _config(cfg)
    return NotificationService(
        recipient=getattr(cfg, "NOTIFICATION_EMAIL", None),
        from_email=getattr(cfg, "FROM_EMAIL", None),
        sendgrid_api_key=getattr(cfg, "SENDGRID_API_KEY", None),
        webhook_url=getattr(cfg, "WEBHOOK_URL", None),
        retry_count=getattr(cfg, "NOTIFICATION_RETRY_COUNT", 3),
        retry_delay=getattr(cfg, "NOTIFICATION_RETRY_DELAY", 5),
        enabled=getattr(cfg, "ENABLE_NOTIFICATION", True),
    )


def get_notification_service() -> NotificationService:
    """Return a singleton NotificationService instance."""
    global _notification_service
    if _notification_service is None:
        _notification_service = build_notification_service()
    return _notification_service


async def close_notification_service() -> None:
    global _notification_service
    if _notification_service is not None:
        await _notification_service.close()
        _notification_service = None
