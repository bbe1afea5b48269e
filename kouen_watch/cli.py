from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .inspector import inspect_site
from .models import AvailabilityRecord, AvailabilityStatus, MonitorConfig
from .runtime import (
    build_orchestrator,
    build_scheduler,
    build_session,
    close_notification_service,
    get_notification_service,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def parse_list_arg(values: Optional[Sequence[str]]) -> List[str]:
    """把多次出现或逗号分隔的参数展开成列表"""
    if not values:
        return []
    result: List[str] = []
    for raw in values:
        result.extend(item.strip() for item in re.split(r"[,，]", raw) if item.strip())
    return result


def build_monitor_config(cfg, args) -> MonitorConfig:
    defaults = cfg.DEFAULT_MONITOR
    return MonitorConfig(
        locations=parse_list_arg(getattr(args, "park", None)) or defaults.locations,
        time_slots=parse_list_arg(getattr(args, "slot", None)) or defaults.time_slots,
        dates=parse_list_arg(getattr(args, "date", None)) or defaults.dates,
        interval_minutes=getattr(args, "interval", None) or defaults.interval_minutes,
    )


def render_records(console: Console, records: Sequence[AvailabilityRecord], *, title: str = "空き状況") -> None:
    table = Table(title=title, show_lines=False)
    table.add_column("公園")
    table.add_column("コート")
    table.add_column("日付")
    table.add_column("時間")
    table.add_column("状態")
    for record in records:
        status = (
            "[green]○ 空き[/green]"
            if record.status is AvailabilityStatus.AVAILABLE
            else "[red]× 満[/red]"
        )
        table.add_row(record.location, record.court_label, record.date, record.time_slot, status)
    console.print(table)
    available = sum(1 for record in records if record.available)
    console.print(f"共 {len(records)} 条记录，可预约 [bold green]{available}[/bold green] 条")


def cmd_options(console: Console, cfg, args) -> None:
    table = Table(title="可选项", show_lines=False)
    table.add_column("公園")
    table.add_column("時間帯")
    rows = max(len(cfg.PARK_OPTIONS), len(cfg.TIME_SLOT_OPTIONS))
    for index in range(rows):
        park = cfg.PARK_OPTIONS[index] if index < len(cfg.PARK_OPTIONS) else ""
        slot = cfg.TIME_SLOT_OPTIONS[index] if index < len(cfg.TIME_SLOT_OPTIONS) else ""
        table.add_row(park, slot)
    console.print(table)


def cmd_check(console: Console, cfg, args) -> None:
    try:
        config = build_monitor_config(cfg, args)
    except ValueError as exc:
        console.print(f"[red]参数错误：{exc}[/red]")
        return
    if not config.locations or not config.time_slots:
        console.print("[red]请至少指定一个公园和一个时间段[/red]")
        return

    async def runner() -> List[AvailabilityRecord]:
        orchestrator = build_orchestrator(cfg)
        async with build_session(cfg) as session:
            records = await orchestrator.run_check(config, session)
        if orchestrator.last_error:
            console.print(f"[yellow]检查未完全成功：{orchestrator.last_error}[/yellow]")
        return records

    records = asyncio.run(runner())
    if args.json:
        console.print_json(json.dumps([record.to_dict() for record in records], ensure_ascii=False))
        return
    render_records(console, records)


def cmd_login(console: Console, cfg, args) -> None:
    async def runner() -> None:
        async with build_session(cfg, identifier=args.user_id, secret=args.password) as session:
            result = await session.login()
            if result.success:
                console.print(f"[green]登录成功[/green] → {result.url}")
                names = ", ".join(sorted(session.cookies.all())) or "-"
                console.print(f"会话 Cookie：{names}")
            else:
                console.print(f"[red]登录失败：{result.reason}[/red]")

    asyncio.run(runner())


def cmd_inspect(console: Console, cfg, args) -> None:
    out_dir = Path(args.out or cfg.INSPECT_OUTPUT_DIR)

    async def runner() -> None:
        async with build_session(cfg) as session:
            await inspect_site(session, out_dir, target_keywords=cfg.TARGET_LINK_KEYWORDS, console=console)

    asyncio.run(runner())


def cmd_notify_test(console: Console, cfg, args) -> None:
    now = datetime.now()
    config = build_monitor_config(cfg, args)
    records = [
        AvailabilityRecord(
            location=location,
            court_label="テストコート",
            date=day,
            time_slot=time_slot,
            status=AvailabilityStatus.AVAILABLE,
            observed_at=now,
        )
        for location, time_slot, day in config.cross_product()
    ]

    async def runner() -> None:
        try:
            result = await get_notification_service().notify(records, now)
        finally:
            await close_notification_service()
        if result.success:
            console.print(f"[green]测试通知已发送（{result.method}）[/green]")
        else:
            console.print(f"[red]测试通知发送失败（{result.method}）：{result.error}[/red]")

    asyncio.run(runner())


def cmd_monitor(console: Console, cfg, args) -> None:
    try:
        config = build_monitor_config(cfg, args)
    except ValueError as exc:
        console.print(f"[red]参数错误：{exc}[/red]")
        return
    if not config.locations or not config.time_slots:
        console.print("[red]请至少指定一个公园和一个时间段[/red]")
        return

    async def runner() -> None:
        scheduler = build_scheduler(cfg)
        stop_event = asyncio.Event()
        try:
            await scheduler.start(config)
            render_records(console, scheduler.last_results, title="首次检查")
            console.print(f"[cyan]监控运行中，每 {config.interval_minutes} 分钟检查一次，Ctrl+C 停止[/cyan]")
            await stop_event.wait()
        finally:
            scheduler.stop()
            await scheduler.session.close()
            await close_notification_service()

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("[yellow]监控已停止[/yellow]")


def cmd_serve(console: Console, cfg, args) -> None:
    from web_api.main import run  # pylint: disable=import-outside-toplevel

    console.print(f"[cyan]启动 API 服务：http://{args.host}:{args.port}/api/docs[/cyan]")
    run(host=args.host, port=args.port)


def _add_selection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--park", action="append", help="Park name, repeatable or comma separated")
    parser.add_argument("--slot", action="append", help="Time slot HH:MM-HH:MM, repeatable or comma separated")
    parser.add_argument("--date", action="append", help="Date YYYY-MM-DD, defaults to today")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tokyo park tennis-court availability monitor")
    parser.add_argument("--log-level", type=str, help="Override KOUEN_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("options", help="List selectable parks and time slots")

    p_check = sub.add_parser("check", help="Log in and check court availability once")
    _add_selection_args(p_check)
    p_check.add_argument("--json", action="store_true", help="Print records as JSON")

    p_login = sub.add_parser("login", help="Verify credentials against the reservation site")
    p_login.add_argument("--user-id", type=str, help="User ID (fallback: KOUEN_USER_ID)")
    p_login.add_argument("--password", type=str, help="Password (fallback: KOUEN_PASSWORD)")

    p_monitor = sub.add_parser("monitor", help="Poll availability periodically and notify on open courts")
    _add_selection_args(p_monitor)
    p_monitor.add_argument("--interval", type=int, help="Minutes between checks")

    p_inspect = sub.add_parser("inspect", help="Save HTML snapshots and structure analysis of the site")
    p_inspect.add_argument("--out", type=str, help="Output directory (default: KOUEN_INSPECT_OUTPUT_DIR)")

    p_notify = sub.add_parser("notify-test", help="Send a sample availability notification")
    _add_selection_args(p_notify)

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p_serve.add_argument("--host", type=str, default=None)
    p_serve.add_argument("--port", type=int, default=None)

    return parser


def run_cli(args) -> None:
    import config as CFG  # pylint: disable=import-outside-toplevel

    configure_logging(args.log_level or CFG.LOG_LEVEL)
    console = Console()

    if args.command == "serve":
        args.host = args.host or CFG.API_HOST
        args.port = args.port or CFG.API_PORT

    handlers = {
        "options": cmd_options,
        "check": cmd_check,
        "login": cmd_login,
        "monitor": cmd_monitor,
        "inspect": cmd_inspect,
        "notify-test": cmd_notify_test,
        "serve": cmd_serve,
    }
    handler = handlers.get(args.command)
    if handler is None:
        console.print(f"[red]未知命令：{args.command}[/red]")
        return
    handler(console, CFG, args)
