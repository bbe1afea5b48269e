from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

if TYPE_CHECKING:  # pragma: no cover
    from .cookies import CookieJar


TIME_SLOT_RE = re.compile(r"^(?P<start>\d{2}:\d{2})-(?P<end>\d{2}:\d{2})$")
SLASH_DATE_RE = re.compile(r"^(?P<y>\d{4})/(?P<m>\d{1,2})/(?P<d>\d{1,2})$")


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class LoginState(str, Enum):
    ANONYMOUS = "anonymous"
    FETCHING_LOGIN_PAGE = "fetching_login_page"
    SUBMITTING_CREDENTIALS = "submitting_credentials"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


def _unique(values: Optional[Iterable[Any]]) -> List[str]:
    if not values:
        return []
    cleaned = (str(item).strip() for item in values)
    return list(dict.fromkeys(text for text in cleaned if text))


def normalize_date(value: Union[str, date]) -> str:
    """把 date 对象、YYYY-MM-DD 或 YYYY/M/D 统一成 ISO 日期字符串"""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    match = SLASH_DATE_RE.match(text)
    if match:
        return date(int(match.group("y")), int(match.group("m")), int(match.group("d"))).isoformat()
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        raise ValueError(f"无效日期: {value!r}") from None


def validate_time_slot(value: str) -> str:
    text = str(value).strip()
    match = TIME_SLOT_RE.match(text)
    if not match:
        raise ValueError(f"时间段格式应为 HH:MM-HH:MM: {value!r}")
    for part in (match.group("start"), match.group("end")):
        hour, minute = (int(piece) for piece in part.split(":"))
        if hour > 24 or minute > 59:
            raise ValueError(f"无效时间段: {value!r}")
    return text


@dataclass
class MonitorConfig:
    """一次检查（或一个监控周期）请求的场地/时段/日期组合"""

    locations: List[str] = field(default_factory=list)
    time_slots: List[str] = field(default_factory=list)
    dates: List[str] = field(default_factory=list)
    interval_minutes: int = 5
    active: bool = False

    def __post_init__(self) -> None:
        self.locations = _unique(self.locations)
        self.time_slots = _unique(validate_time_slot(slot) for slot in self.time_slots)
        self.dates = _unique(normalize_date(item) for item in self.dates)
        try:
            self.interval_minutes = int(self.interval_minutes)
        except (TypeError, ValueError):
            raise ValueError(f"无效的检查间隔: {self.interval_minutes!r}") from None
        if self.interval_minutes <= 0:
            raise ValueError("检查间隔必须大于 0 分钟")

    def effective_dates(self) -> List[str]:
        if self.dates:
            return list(self.dates)
        return [date.today().isoformat()]

    def cross_product(self) -> Iterator[Tuple[str, str, str]]:
        """按 场地 → 时段 → 日期 的顺序展开所有组合"""
        dates = self.effective_dates()
        for location in self.locations:
            for time_slot in self.time_slots:
                for day in dates:
                    yield location, time_slot, day

    def selection_size(self) -> int:
        return len(self.locations) * len(self.time_slots) * len(self.effective_dates())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locations": list(self.locations),
            "time_slots": list(self.time_slots),
            "dates": list(self.dates),
            "interval_minutes": self.interval_minutes,
            "active": self.active,
        }


@dataclass(frozen=True)
class AvailabilityRecord:
    location: str
    court_label: str
    date: str
    time_slot: str
    status: AvailabilityStatus
    observed_at: datetime

    @property
    def available(self) -> bool:
        return self.status is AvailabilityStatus.AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "court_label": self.court_label,
            "date": self.date,
            "time_slot": self.time_slot,
            "status": self.status.value,
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class LoginForm:
    action_url: str
    hidden_fields: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Link:
    href: str
    text: str


@dataclass
class LoginRules:
    """登录结果判定规则：先匹配失败关键字，再匹配成功关键字，最后取默认值"""

    failure_keywords: List[str] = field(default_factory=list)
    success_keywords: List[str] = field(default_factory=list)
    default_authenticated: bool = True


@dataclass
class SessionState:
    cookies: "CookieJar"
    authenticated: bool = False
    login_state: LoginState = LoginState.ANONYMOUS
    last_login_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass
class LoginResult:
    success: bool
    state: LoginState
    reason: Optional[str] = None
    html: str = ""
    url: Optional[str] = None


@dataclass
class NotificationMessage:
    subject: str
    body: str
    recipient: Optional[str] = None


@dataclass
class NotifyResult:
    success: bool
    error: Optional[str] = None
    method: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success, "method": self.method}
        if self.error:
            payload["error"] = self.error
        return payload
