"""Site inspection helper.

Logs in with the configured account, walks to the first tennis-related page
and stores raw HTML plus a structural summary (form, hidden inputs, links,
select boxes, tables) of every visited page.  Used when the reservation site
changes its markup and the keyword/marker configuration needs adjusting.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from .auth import SessionManager
from .errors import TransportError
from .extract import (
    absolute_url,
    clean_text,
    extract_form_action,
    extract_hidden_fields,
    extract_links,
    extract_tables,
    parse_attributes,
)
from .service import DEFAULT_TARGET_KEYWORDS, CheckOrchestrator

logger = logging.getLogger(__name__)

TITLE_RE = re.compile(r"<title[^>]*>(?P<title>.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
SELECT_RE = re.compile(r"<select\b(?P<attrs>[^>]*)>(?P<body>.*?)</select\s*>", re.IGNORECASE | re.DOTALL)
OPTION_RE = re.compile(r"<option\b(?P<attrs>[^>]*)>(?P<text>.*?)(?=<option\b|</option\s*>|$)", re.IGNORECASE | re.DOTALL)

MAX_LINKS = 50
MAX_ROWS = 5


def _extract_selects(html: str) -> List[Dict[str, Any]]:
    selects: List[Dict[str, Any]] = []
    for match in SELECT_RE.finditer(html):
        attrs = parse_attributes(match.group("attrs"))
        options = []
        for option in OPTION_RE.finditer(match.group("body")):
            option_attrs = parse_attributes(option.group("attrs"))
            text = clean_text(option.group("text"))
            options.append({"value": option_attrs.get("value", text), "text": text})
        selects.append({"name": attrs.get("name") or attrs.get("id") or "", "options": options})
    return selects


def analyze_page(html: str, url: str, status_code: int) -> Dict[str, Any]:
    title_match = TITLE_RE.search(html)
    tables = extract_tables(html)
    links = extract_links(html)
    return {
        "url": url,
        "status_code": status_code,
        "title": clean_text(title_match.group("title")) if title_match else "",
        "form_action": extract_form_action(html),
        "hidden_fields": sorted(extract_hidden_fields(html)),
        "links": [{"href": absolute_url(url, link.href), "text": link.text} for link in links[:MAX_LINKS]],
        "link_count": len(links),
        "selects": _extract_selects(html),
        "tables": [{"row_count": len(table), "rows": table[:MAX_ROWS]} for table in tables],
    }


def _save(out_dir: Path, name: str, html: str, analysis: Dict[str, Any]) -> None:
    (out_dir / f"{name}.html").write_text(html, encoding="utf-8")
    (out_dir / f"{name}-analysis.json").write_text(
        json.dumps(analysis, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


async def inspect_site(
    session: SessionManager,
    out_dir: Path,
    *,
    target_keywords: Sequence[str] = DEFAULT_TARGET_KEYWORDS,
    console: Optional[Console] = None,
) -> Dict[str, Any]:
    console = console or Console()
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    pages: Dict[str, Dict[str, Any]] = {}
    summary: Dict[str, Any] = {
        "started_at": datetime.now().isoformat(),
        "login_url": session.login_url,
        "login_success": False,
        "login_reason": None,
        "target_links": [],
        "pages": pages,
    }

    console.print(f"[cyan]访问登录页：{session.login_url}[/cyan]")
    try:
        response = await session.authenticated_fetch(session.login_url)
    except TransportError as exc:
        console.print(f"[red]访问失败：{exc}[/red]")
        summary["login_reason"] = str(exc)
    else:
        analysis = analyze_page(response.text, str(response.request.url), response.status_code)
        _save(out_dir, "01-login", response.text, analysis)
        pages["01-login"] = analysis

    result = await session.login()
    summary["login_success"] = result.success
    summary["login_reason"] = result.reason
    if result.html:
        analysis = analyze_page(result.html, result.url or session.login_url, 200)
        _save(out_dir, "02-home", result.html, analysis)
        pages["02-home"] = analysis

    if result.success:
        base = result.url or session.login_url
        links = CheckOrchestrator(target_keywords=target_keywords).find_target_links(result.html, base)
        summary["target_links"] = [{"href": link.href, "text": link.text} for link in links]
        if summary["target_links"]:
            target = summary["target_links"][0]
            console.print(f"[cyan]进入目标页面：{target['text']} ({target['href']})[/cyan]")
            try:
                response = await session.authenticated_fetch(target["href"], headers={"Referer": base})
            except TransportError as exc:
                console.print(f"[red]目标页面访问失败：{exc}[/red]")
            else:
                analysis = analyze_page(response.text, str(response.request.url), response.status_code)
                _save(out_dir, "03-tennis", response.text, analysis)
                pages["03-tennis"] = analysis
    else:
        console.print(f"[red]登录失败：{result.reason}[/red]")

    (out_dir / "summary.json").write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")

    table = Table(title="站点结构分析", show_lines=False)
    table.add_column("页面")
    table.add_column("标题")
    table.add_column("表单 action")
    table.add_column("隐藏字段", justify="right")
    table.add_column("链接", justify="right")
    table.add_column("下拉框", justify="right")
    table.add_column("表格", justify="right")
    for name, analysis in pages.items():
        table.add_row(
            name,
            analysis["title"] or "-",
            analysis["form_action"] or "-",
            str(len(analysis["hidden_fields"])),
            str(analysis["link_count"]),
            str(len(analysis["selects"])),
            str(len(analysis["tables"])),
        )
    console.print(table)
    console.print(
        f"登录：{'[green]成功[/green]' if result.success else '[red]失败[/red]'}"
        f"，目标链接 {len(summary['target_links'])} 个"
    )
    console.print(f"[green]已写入 {out_dir}[/green]")
    logger.info("站点分析完成: %s 个页面写入 %s", len(pages), out_dir)
    return summary
