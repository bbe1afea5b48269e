"""Notification helpers for announcing newly opened courts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .models import AvailabilityRecord, NotificationMessage, NotifyResult

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
RESERVATION_SITE_URL = "https://kouen.sports.metro.tokyo.lg.jp/web/"


def _format_ja_datetime(value: datetime) -> str:
    return f"{value.year}/{value.month}/{value.day} {value:%H:%M:%S}"


def format_court_line(record: AvailabilityRecord) -> str:
    return f"🎾 {record.location} {record.court_label} - {record.time_slot} ({record.date})"


def build_message(
    records: Sequence[AvailabilityRecord],
    observed_at: datetime,
    *,
    recipient: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NotificationMessage:
    court_list = "\n".join(format_court_line(record) for record in records)
    subject = f"🎉 テニスコート空き発見！{len(records)}件"
    body = (
        "都営テニスコート監視システムからの通知\n\n"
        "🎾 空きコートが見つかりました！\n\n"
        "📋 発見した空きコート:\n"
        f"{court_list}\n\n"
        f"⏰ 発見時刻: {_format_ja_datetime(observed_at)}\n"
        f"🔗 予約システム: {RESERVATION_SITE_URL}\n\n"
        "急いで予約サイトにアクセスして予約を取ってください！\n\n"
        "---\n"
        "都営テニスコート監視システム\n"
        f"{_format_ja_datetime(now or datetime.now())}"
    )
    return NotificationMessage(subject=subject, body=body, recipient=recipient)


class ConsoleTransport:
    """未配置任何外部通道时，把通知打印到终端"""

    method = "console"

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    async def send(self, message: NotificationMessage) -> NotifyResult:
        self.console.print(
            Panel(
                Text(message.body),
                title=Text(message.subject),
                subtitle=f"宛先: {message.recipient or '-'}",
                expand=False,
            )
        )
        return NotifyResult(success=True, method=self.method)


class _HttpTransport:
    method = "http"

    def __init__(self, client: httpx.AsyncClient, *, retry_count: int = 3, retry_delay: float = 5) -> None:
        self.client = client
        self.retry_count = max(1, int(retry_count))
        self.retry_delay = max(0.0, float(retry_delay))

    def _request(self, message: NotificationMessage) -> Dict[str, Any]:
        raise NotImplementedError

    async def send(self, message: NotificationMessage) -> NotifyResult:
        return await self._post_with_retry(**self._request(message))

    async def _post_with_retry(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> NotifyResult:
        error: Optional[str] = None
        for attempt in range(1, self.retry_count + 1):
            try:
                response = await self.client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return NotifyResult(success=True, method=self.method)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                text = exc.response.text
                error = f"HTTP {status}"
                logger.error(
                    "%s 通知接口返回 HTTP %s: %s",
                    self.method,
                    status,
                    text.strip()[:500] if text else "无响应体",
                )
            except Exception as exc:  # pylint: disable=broad-except
                error = str(exc) or type(exc).__name__
                logger.error(
                    "%s 通知请求异常（第 %s/%s 次尝试）: %s",
                    self.method,
                    attempt,
                    self.retry_count,
                    exc,
                )
            if attempt < self.retry_count:
                await asyncio.sleep(self.retry_delay)
        return NotifyResult(success=False, error=error, method=self.method)


class WebhookTransport(_HttpTransport):
    """IFTTT / Zapier 之类的通用 webhook"""

    method = "webhook"

    def __init__(self, url: str, client: httpx.AsyncClient, **kwargs: Any) -> None:
        super().__init__(client, **kwargs)
        self.url = url

    def _request(self, message: NotificationMessage) -> Dict[str, Any]:
        return {
            "url": self.url,
            "payload": {
                "subject": message.subject,
                "body": message.body,
                "to": message.recipient,
                "timestamp": datetime.now().isoformat(),
            },
        }


class SendGridTransport(_HttpTransport):
    method = "sendgrid"

    def __init__(self, api_key: str, from_email: str, client: httpx.AsyncClient, **kwargs: Any) -> None:
        super().__init__(client, **kwargs)
        self.api_key = api_key
        self.from_email = from_email

    def _request(self, message: NotificationMessage) -> Dict[str, Any]:
        return {
            "url": SENDGRID_URL,
            "payload": {
                "personalizations": [{"to": [{"email": message.recipient}]}],
                "from": {"email": self.from_email},
                "subject": message.subject,
                "content": [{"type": "text/plain", "value": message.body}],
            },
            "headers": {"Authorization": f"Bearer {self.api_key}"},
        }

    async def send(self, message: NotificationMessage) -> NotifyResult:
        if not message.recipient:
            return NotifyResult(success=False, error="未配置收件人 NOTIFICATION_EMAIL", method=self.method)
        return await super().send(message)


class NotificationService:
    """选择第一个已配置的通道发送空位通知：SendGrid → Webhook → 终端"""

    def __init__(
        self,
        *,
        recipient: Optional[str] = None,
        from_email: Optional[str] = None,
        sendgrid_api_key: Optional[str] = None,
        webhook_url: Optional[str] = None,
        retry_count: int = 3,
        retry_delay: float = 5,
        enabled: bool = True,
        console: Optional[Console] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.recipient = recipient or None
        self.from_email = from_email or None
        self.enabled = enabled
        self.client = client or httpx.AsyncClient(timeout=10.0)
        options = {"retry_count": retry_count, "retry_delay": retry_delay}
        if sendgrid_api_key:
            self.transport: Any = SendGridTransport(
                sendgrid_api_key, self.from_email or "", self.client, **options
            )
        elif webhook_url:
            self.transport = WebhookTransport(webhook_url, self.client, **options)
        else:
            self.transport = ConsoleTransport(console)

    @property
    def method(self) -> str:
        return self.transport.method

    async def send(self, message: NotificationMessage) -> NotifyResult:
        if not self.enabled:
            logger.info("通知已关闭，跳过: %s", message.subject)
            return NotifyResult(success=False, error="notifications disabled", method=None)
        logger.info("通过 %s 发送通知: %s", self.method, message.subject)
        result = await self.transport.send(message)
        if result.success:
            logger.info("通知发送成功 (%s)", self.method)
        else:
            logger.error("通知发送失败 (%s): %s", self.method, result.error)
        return result

    async def notify(self, records: List[AvailabilityRecord], observed_at: datetime) -> NotifyResult:
        """PollScheduler 的通知回调"""
        if not records:
            return NotifyResult(success=False, error="没有需要通知的空位", method=None)
        message = build_message(records, observed_at, recipient=self.recipient)
        return await self.send(message)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
