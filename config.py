"""Runtime configuration for the Tokyo park tennis-court monitor.

Configuration is loaded from environment variables so the same codebase can
run locally, on a server or in a container without modifying source files.
Engine classes never read this module directly; the CLI and the web API build
them from the values below through ``kouen_watch.runtime``."""

import json
import os
from typing import Any, List, Optional

from kouen_watch.models import LoginRules, MonitorConfig


ENVIRONMENT = os.getenv("KOUEN_ENV", "development").lower()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"环境变量 {name} 不是有效的整数") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise RuntimeError(f"环境变量 {name} 不是有效的数字") from None


def _split_env_list(name: str, default: Optional[List[str]] = None) -> List[str]:
    value = os.getenv(name, "")
    if not value:
        return list(default or [])
    return [item.strip() for item in value.replace(";", ",").split(",") if item.strip()]


def _load_json_from_env(env_key: str) -> Optional[Any]:
    raw = os.getenv(env_key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise RuntimeError(f"环境变量 {env_key} 不是有效的 JSON") from None


# ---------------------------------------------------------------------------
# 站点与账号
# ---------------------------------------------------------------------------

SITE_URL = os.getenv("KOUEN_SITE_URL", "https://kouen.sports.metro.tokyo.lg.jp/web/")
LOGIN_URL = os.getenv(
    "KOUEN_LOGIN_URL",
    "https://kouen.sports.metro.tokyo.lg.jp/web/rsvWUserAttestationLoginAction.do",
)
USER_ID = os.getenv("KOUEN_USER_ID", "")
PASSWORD = os.getenv("KOUEN_PASSWORD", "")
IDENTIFIER_FIELD = os.getenv("KOUEN_IDENTIFIER_FIELD", "userId")
SECRET_FIELD = os.getenv("KOUEN_SECRET_FIELD", "password")

TIMEOUT_SECONDS = _env_float("KOUEN_TIMEOUT_SECONDS", 15.0)
MAX_REDIRECTS = _env_int("KOUEN_MAX_REDIRECTS", 8)
USER_AGENT = os.getenv(
    "KOUEN_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)


# ---------------------------------------------------------------------------
# 页面判定规则
# ---------------------------------------------------------------------------

LOGIN_RULES = LoginRules(
    failure_keywords=_split_env_list(
        "KOUEN_LOGIN_FAILURE_KEYWORDS",
        ["エラー", "error", "失敗", "failed", "ログインできません", "パスワードが正しくありません"],
    ),
    success_keywords=_split_env_list(
        "KOUEN_LOGIN_SUCCESS_KEYWORDS",
        ["メニュー", "ホーム", "予約", "logout", "ログアウト"],
    ),
    default_authenticated=_env_bool("KOUEN_LOGIN_DEFAULT_SUCCESS", True),
)

TARGET_LINK_KEYWORDS = _split_env_list("KOUEN_TARGET_KEYWORDS", ["テニス", "tennis", "コート"])
COURT_DESIGNATORS = _split_env_list("KOUEN_COURT_DESIGNATORS", ["コート", "court"])
OPEN_MARKERS = _split_env_list("KOUEN_OPEN_MARKERS", ["○", "◯", "空き", "available", "open", "可"])
CLOSED_MARKERS = _split_env_list(
    "KOUEN_CLOSED_MARKERS",
    ["×", "✕", "満", "不可", "空きなし", "予約済", "full", "closed", "unavailable"],
)
EMPTY_RESULT_LABEL = os.getenv("KOUEN_EMPTY_RESULT_LABEL", "データ解析中")


# ---------------------------------------------------------------------------
# 监控选项
# ---------------------------------------------------------------------------

PARK_OPTIONS = _split_env_list(
    "KOUEN_PARK_OPTIONS",
    [
        "駒沢オリンピック公園",
        "有明テニスの森公園",
        "武蔵野の森公園",
        "砧公園",
        "代々木公園",
        "葛西臨海公園",
    ],
)

TIME_SLOT_OPTIONS = _split_env_list(
    "KOUEN_TIME_SLOT_OPTIONS",
    [
        "09:00-11:00",
        "11:00-13:00",
        "13:00-15:00",
        "15:00-17:00",
        "17:00-19:00",
        "19:00-21:00",
    ],
)

# KOUEN_MONITOR_JSON 可整体覆盖，例如 {"locations": ["砧公園"], "time_slots": ["09:00-11:00"]}
_monitor_override = _load_json_from_env("KOUEN_MONITOR_JSON") or {}
if not isinstance(_monitor_override, dict):
    raise RuntimeError("环境变量 KOUEN_MONITOR_JSON 必须是 JSON 对象")

DEFAULT_MONITOR = MonitorConfig(
    locations=_monitor_override.get("locations") or _split_env_list("KOUEN_PARKS", PARK_OPTIONS[:1]),
    time_slots=_monitor_override.get("time_slots") or _split_env_list("KOUEN_TIME_SLOTS", TIME_SLOT_OPTIONS[:1]),
    dates=_monitor_override.get("dates") or _split_env_list("KOUEN_DATES"),
    interval_minutes=_monitor_override.get("interval_minutes") or _env_int("KOUEN_MONITOR_INTERVAL", 5),
)


# ---------------------------------------------------------------------------
# 通知
# ---------------------------------------------------------------------------

ENABLE_NOTIFICATION = _env_bool("KOUEN_ENABLE_NOTIFICATION", True)
NOTIFICATION_EMAIL = os.getenv("NOTIFICATION_EMAIL", "")
FROM_EMAIL = os.getenv("FROM_EMAIL", "tennis-monitor@localhost")
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
NOTIFICATION_RETRY_COUNT = _env_int("KOUEN_NOTIFICATION_RETRY_COUNT", 3)
NOTIFICATION_RETRY_DELAY = _env_float("KOUEN_NOTIFICATION_RETRY_DELAY", 5.0)


# ---------------------------------------------------------------------------
# 运行时
# ---------------------------------------------------------------------------

LOG_LEVEL = os.getenv("KOUEN_LOG_LEVEL", "DEBUG" if ENVIRONMENT == "development" else "INFO").upper()
API_HOST = os.getenv("KOUEN_API_HOST", "0.0.0.0")
API_PORT = _env_int("KOUEN_API_PORT", 8000)
INSPECT_OUTPUT_DIR = os.getenv("KOUEN_INSPECT_OUTPUT_DIR", "analysis-results")
