from .models import AvailabilityRecord, AvailabilityStatus, LoginRules, MonitorConfig
from .cookies import CookieJar
from .auth import SessionManager
from .parser import AvailabilityParser
from .service import CheckOrchestrator
from .monitor import PollScheduler
from .notification import NotificationService

__all__ = [
    "AvailabilityRecord",
    "AvailabilityStatus",
    "LoginRules",
    "MonitorConfig",
    "CookieJar",
    "SessionManager",
    "AvailabilityParser",
    "CheckOrchestrator",
    "PollScheduler",
    "NotificationService",
]
