from __future__ import annotations

import dataclasses
import inspect
import logging
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from tzlocal import get_localzone

from .auth import SessionManager
from .models import AvailabilityRecord, MonitorConfig, NotifyResult
from .service import CheckOrchestrator

logger = logging.getLogger(__name__)

JOB_ID = "court-availability-check"
NOTIFICATION_HISTORY = 10

Notifier = Callable[[List[AvailabilityRecord], datetime], Awaitable[Any]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PollScheduler:
    """按固定间隔驱动 CheckOrchestrator 的监控器。

    - start() 立即检查一次，然后每 interval_minutes 分钟触发一次；
    - 同一时间只允许一个检查在跑，重叠的触发直接跳过并计数；
    - stop() 之后不会再开始新的检查，正在进行的检查允许跑完；
    - 每个周期只要有可预约记录就通知一次，不做跨周期去重。
    """

    def __init__(
        self,
        orchestrator: CheckOrchestrator,
        session: SessionManager,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.session = session
        self.notifier = notifier
        self.state = SchedulerState.STOPPED
        self.config: Optional[MonitorConfig] = None
        self.check_count = 0
        self.skipped_ticks = 0
        self.last_check: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_results: List[AvailabilityRecord] = []
        self.started_at: Optional[datetime] = None
        self.notifications: Deque[Dict[str, Any]] = deque(maxlen=NOTIFICATION_HISTORY)
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def start(self, config: MonitorConfig, *, run_immediately: bool = True) -> None:
        if self.running:
            raise RuntimeError("监控已在运行，请先停止")
        self.config = dataclasses.replace(config, active=True)
        self.state = SchedulerState.RUNNING
        self.started_at = datetime.now()

        scheduler = AsyncIOScheduler(timezone=str(get_localzone()))
        scheduler.add_job(
            self.tick,
            IntervalTrigger(minutes=self.config.interval_minutes),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "监控已启动: %s 个场地, %s 个时段, 间隔 %s 分钟",
            len(self.config.locations),
            len(self.config.time_slots),
            self.config.interval_minutes,
        )
        if run_immediately:
            await self.tick()

    def stop(self) -> None:
        if not self.running:
            return
        self.state = SchedulerState.STOPPED
        if self.config is not None:
            self.config = dataclasses.replace(self.config, active=False)
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.remove_all_jobs()
            if scheduler.running:
                scheduler.shutdown(wait=False)
        logger.info("监控已停止 (共检查 %s 次)", self.check_count)

    async def tick(self) -> Optional[List[AvailabilityRecord]]:
        """执行一个监控周期；上一个周期未结束或监控已停止时返回 None"""
        if not self.running or self.config is None:
            return None
        if self._in_flight:
            self.skipped_ticks += 1
            logger.info("上一次检查仍在进行，跳过本次触发 (累计 %s 次)", self.skipped_ticks)
            return None

        self._in_flight = True
        try:
            records = await self.orchestrator.run_check(self.config, self.session)
        finally:
            self._in_flight = False

        self.check_count += 1
        self.last_check = records[0].observed_at if records else datetime.now()
        self.last_results = records
        self.last_error = self.orchestrator.last_error

        available = [record for record in records if record.available]
        if available:
            await self._notify(available, self.last_check)
        return records

    async def _notify(self, records: List[AvailabilityRecord], observed_at: datetime) -> None:
        entry: Dict[str, Any] = {
            "timestamp": observed_at.isoformat(),
            "count": len(records),
            "courts": [f"{r.location} {r.court_label} - {r.time_slot} ({r.date})" for r in records],
            "success": False,
            "method": None,
        }
        if self.notifier is None:
            logger.info("发现 %s 条可预约记录（未配置通知）", len(records))
            entry["method"] = "none"
            self.notifications.appendleft(entry)
            return
        try:
            result = self.notifier(records, observed_at)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("发送空位通知失败: %s", exc)
            entry["error"] = str(exc)
        else:
            if isinstance(result, NotifyResult):
                entry.update(result.to_dict())
            else:
                entry["success"] = bool(result) if result is not None else True
        self.notifications.appendleft(entry)

    def next_run_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def status(self) -> Dict[str, Any]:
        next_run = self.next_run_time()
        return {
            "state": self.state.value,
            "active": self.running,
            "in_flight": self._in_flight,
            "config": self.config.to_dict() if self.config else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "check_count": self.check_count,
            "skipped_ticks": self.skipped_ticks,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "next_run_time": next_run.isoformat() if next_run else None,
            "last_error": self.last_error,
            "last_results": [record.to_dict() for record in self.last_results],
            "notifications": list(self.notifications),
        }
