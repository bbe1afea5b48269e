import json

import pytest
from rich.console import Console

from kouen_watch.inspector import analyze_page, inspect_site

from .conftest import LOGIN_PAGE


def test_analyze_page_summarises_structure():
    html = LOGIN_PAGE + """
    <select name="bcd"><option value="1">駒沢<option value="2" selected>砧</select>
    <table><tr><td>a</td><td>b</td></tr></table>
    """
    analysis = analyze_page(html, "https://kouen.example.jp/web/login.do", 200)

    assert analysis["title"] == "ログイン"
    assert analysis["form_action"] == "/web/rsvWUserAttestationLoginSubmit.do"
    assert analysis["hidden_fields"] == ["displayNo", "emptyField", "org.apache.struts.taglib.html.TOKEN"]
    assert analysis["selects"] == [
        {"name": "bcd", "options": [{"value": "1", "text": "駒沢"}, {"value": "2", "text": "砧"}]}
    ]
    assert analysis["tables"] == [{"row_count": 1, "rows": [["a", "b"]]}]


@pytest.mark.asyncio
async def test_inspect_site_writes_snapshots(site, tmp_path):
    console = Console(record=True, width=160)

    async with site.session() as session:
        summary = await inspect_site(session, tmp_path, console=console)

    assert summary["login_success"] is True
    assert summary["target_links"][0]["href"].endswith("/web/rsvWTransInstSrchVacantAction.do?ppsd=tennis")
    assert set(summary["pages"]) == {"01-login", "02-home", "03-tennis"}
    for name in ("01-login", "02-home", "03-tennis"):
        assert (tmp_path / f"{name}.html").exists()
        assert (tmp_path / f"{name}-analysis.json").exists()

    saved = json.loads((tmp_path / "summary.json").read_text(encoding="utf-8"))
    assert saved["pages"]["03-tennis"]["tables"][0]["row_count"] == 3
    assert "站点结构分析" in console.export_text()


@pytest.mark.asyncio
async def test_inspect_site_reports_login_failure(site, tmp_path):
    site.login_response = "<p class='error'>ログインできません</p>"

    async with site.session() as session:
        summary = await inspect_site(session, tmp_path, console=Console(record=True))

    assert summary["login_success"] is False
    assert summary["login_reason"] == "ログインできません"
    assert "03-tennis" not in summary["pages"]
