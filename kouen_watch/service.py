from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from .auth import SessionManager
from .errors import LoginRejected, MonitorError, TargetNotFound, TransportError
from .extract import absolute_url, extract_links, keyword_predicate
from .models import AvailabilityRecord, Link, MonitorConfig
from .parser import AvailabilityParser

logger = logging.getLogger(__name__)

DEFAULT_TARGET_KEYWORDS = ("テニス", "tennis", "コート")
SKIPPED_HREF_PREFIXES = ("javascript:", "#", "mailto:")


class CheckOrchestrator:
    """登录 → 找到目标页 → 解析表格，组合成一次完整检查。

    run_check 从不抛异常：任何一步失败都会把整个请求组合降级为
    UNAVAILABLE 的占位记录，标签里带上失败原因。
    """

    def __init__(
        self,
        parser: Optional[AvailabilityParser] = None,
        *,
        target_keywords: Sequence[str] = DEFAULT_TARGET_KEYWORDS,
    ) -> None:
        self.parser = parser or AvailabilityParser()
        self.target_keywords = list(target_keywords)
        self.last_error: Optional[str] = None

    def degraded_records(
        self,
        config: MonitorConfig,
        reason: str,
        observed_at: Optional[datetime] = None,
    ) -> List[AvailabilityRecord]:
        return self.parser.sentinel_records(config, reason, observed_at)

    def find_target_links(self, html: str, page_url: str) -> List[Link]:
        links = extract_links(html, keyword_predicate(self.target_keywords))
        resolved: List[Link] = []
        for link in links:
            if link.href.lower().startswith(SKIPPED_HREF_PREFIXES):
                continue
            resolved.append(Link(href=absolute_url(page_url, link.href), text=link.text))
        return resolved

    async def _check(self, config: MonitorConfig, session: SessionManager, observed_at: datetime) -> List[AvailabilityRecord]:
        result = await session.login()
        if not result.success:
            raise LoginRejected(f"login failed: {result.reason}")

        targets = self.find_target_links(result.html, result.url or session.login_url)
        if not targets:
            raise TargetNotFound("target page not found")
        target = targets[0]
        logger.info("进入目标页面: %s (%s)", target.text, target.href)

        try:
            response = await session.authenticated_fetch(target.href, headers={"Referer": result.url or session.login_url})
        except TransportError as exc:
            raise TransportError(f"target page unreachable: {exc}", timeout=exc.timeout) from exc
        if not response.is_success:
            raise TransportError(f"target page unreachable: HTTP {response.status_code}")
        return self.parser.parse(response.text, config, observed_at)

    async def run_check(self, config: MonitorConfig, session: SessionManager) -> List[AvailabilityRecord]:
        observed_at = datetime.now()
        try:
            records = await self._check(config, session, observed_at)
        except MonitorError as exc:
            self.last_error = str(exc)
            logger.warning("检查降级: %s", exc)
            return self.degraded_records(config, str(exc), observed_at)
        except Exception as exc:  # pylint: disable=broad-except
            self.last_error = f"unexpected error: {exc}"
            logger.exception("检查过程中出现未预期的异常")
            return self.degraded_records(config, self.last_error, observed_at)

        self.last_error = None
        available = sum(1 for record in records if record.available)
        logger.info("检查完成: %s 条记录, %s 条可预约", len(records), available)
        return records
