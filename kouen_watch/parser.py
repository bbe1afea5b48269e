from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ParseEmpty
from .extract import Table, extract_tables
from .models import AvailabilityRecord, AvailabilityStatus, MonitorConfig

logger = logging.getLogger(__name__)

DEFAULT_COURT_DESIGNATORS = ("コート", "court")
DEFAULT_OPEN_MARKERS = ("○", "◯", "空き", "available", "open", "可")
DEFAULT_CLOSED_MARKERS = ("×", "✕", "満", "不可", "空きなし", "予約済", "full", "closed", "unavailable")
DEFAULT_EMPTY_LABEL = "no data"


def _lowered(values: Iterable[str]) -> List[str]:
    return [value.lower() for value in values if value]


class AvailabilityParser:
    """把结果页里的表格转换成 AvailabilityRecord。

    表格行无法和请求里的 场地/日期/时段 对应起来（页面没有暴露这层关系），
    所以每个球场行都会复制到整个请求组合上：结果含义是“该页面显示了这些
    球场状态”。
    """

    def __init__(
        self,
        *,
        court_designators: Sequence[str] = DEFAULT_COURT_DESIGNATORS,
        open_markers: Sequence[str] = DEFAULT_OPEN_MARKERS,
        closed_markers: Sequence[str] = DEFAULT_CLOSED_MARKERS,
        empty_label: str = DEFAULT_EMPTY_LABEL,
    ) -> None:
        self.court_designators = _lowered(court_designators)
        self.open_markers = _lowered(open_markers)
        self.closed_markers = _lowered(closed_markers)
        self.empty_label = empty_label

    def is_court_label(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(token in lowered for token in self.court_designators)

    def classify_status(self, text: str) -> AvailabilityStatus:
        """含有满位标记即为 Unavailable，否则含有空位标记才是 Available。

        满位标记优先于空位标记，所以「○ 満」这类同时出现两种标记的单元格也算满位。
        """
        lowered = (text or "").lower()
        # 「不可」「空きなし」里也含有空位标记，所以先判定满位标记
        if any(marker in lowered for marker in self.closed_markers):
            return AvailabilityStatus.UNAVAILABLE
        if any(marker in lowered for marker in self.open_markers):
            return AvailabilityStatus.AVAILABLE
        return AvailabilityStatus.UNAVAILABLE

    def court_rows(self, tables: Iterable[Table]) -> List[Tuple[str, AvailabilityStatus]]:
        """返回所有 (球场名, 状态) 行，找不到时抛出 ParseEmpty"""
        rows = []
        for table in tables:
            for row in table:
                if len(row) < 2:
                    continue
                label, status_text = row[0], row[1]
                if not self.is_court_label(label):
                    continue
                rows.append((label, self.classify_status(status_text)))
        if not rows:
            raise ParseEmpty("no court rows found")
        return rows

    def sentinel_records(
        self,
        config: MonitorConfig,
        label: str,
        observed_at: Optional[datetime] = None,
    ) -> List[AvailabilityRecord]:
        observed_at = observed_at or datetime.now()
        return [
            AvailabilityRecord(
                location=location,
                court_label=label,
                date=day,
                time_slot=time_slot,
                status=AvailabilityStatus.UNAVAILABLE,
                observed_at=observed_at,
            )
            for location, time_slot, day in config.cross_product()
        ]

    def parse(
        self,
        page: Union[str, Sequence[Table]],
        config: MonitorConfig,
        observed_at: Optional[datetime] = None,
    ) -> List[AvailabilityRecord]:
        """把球场行复制到选择的每个 (公园, 时段, 日期) 组合上。

        记录先按选择顺序（cross_product）排列，同一组合内再按表格中的行顺序排列。
        找不到球场行时返回占位记录。
        """
        observed_at = observed_at or datetime.now()
        tables = extract_tables(page) if isinstance(page, str) else list(page)
        try:
            rows = self.court_rows(tables)
        except ParseEmpty:
            logger.info("结果页未找到球场行（表格数: %s），返回占位记录", len(tables))
            return self.sentinel_records(config, self.empty_label, observed_at)

        records: List[AvailabilityRecord] = []
        for location, time_slot, day in config.cross_product():
            for label, status in rows:
                records.append(
                    AvailabilityRecord(
                        location=location,
                        court_label=label,
                        date=day,
                        time_slot=time_slot,
                        status=status,
                        observed_at=observed_at,
                    )
                )
        logger.debug("解析到 %s 个球场行，生成 %s 条记录", len(rows), len(records))
        return records
