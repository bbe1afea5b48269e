import httpx
import pytest

from kouen_watch.models import AvailabilityStatus, MonitorConfig
from kouen_watch.service import CheckOrchestrator

from .conftest import LOGIN_ERROR_PAGE


def _config(**overrides):
    values = {"locations": ["砧公園"], "time_slots": ["09:00-11:00"], "dates": ["2025-05-01"]}
    values.update(overrides)
    return MonitorConfig(**values)


@pytest.mark.asyncio
async def test_single_available_court(site):
    site.pages["/web/rsvWTransInstSrchVacantAction.do"] = (
        "<table><tr><td>人工芝コートA</td><td>○</td></tr></table>"
    )
    orchestrator = CheckOrchestrator()

    async with site.session() as session:
        records = await orchestrator.run_check(_config(), session)

    assert len(records) == 1
    record = records[0]
    assert record.status is AvailabilityStatus.AVAILABLE
    assert (record.location, record.time_slot, record.date) == ("砧公園", "09:00-11:00", "2025-05-01")
    assert record.court_label == "人工芝コートA"
    assert orchestrator.last_error is None

    target = site.last_request("/web/rsvWTransInstSrchVacantAction.do")
    assert target.url.params["ppsd"] == "tennis"
    assert target.headers["Cookie"] == "JSESSIONID=s1; AUTH=ok"


@pytest.mark.asyncio
async def test_full_page_replicates_rows(site):
    orchestrator = CheckOrchestrator()
    config = _config(locations=["砧公園", "代々木公園"], time_slots=["09:00-11:00", "11:00-13:00"])

    async with site.session() as session:
        records = await orchestrator.run_check(config, session)

    assert len(records) >= config.selection_size()
    assert len(records) == config.selection_size() * 2
    assert sum(1 for record in records if record.available) == config.selection_size()


@pytest.mark.asyncio
async def test_login_page_timeout_degrades_to_single_record(site):
    site.login_page_error = httpx.ConnectTimeout("connect timed out")
    orchestrator = CheckOrchestrator()

    async with site.session() as session:
        records = await orchestrator.run_check(_config(), session)

    assert len(records) == 1
    assert records[0].status is AvailabilityStatus.UNAVAILABLE
    assert records[0].court_label.startswith("login failed:")
    assert "timeout" in records[0].court_label
    assert orchestrator.last_error == records[0].court_label


@pytest.mark.asyncio
async def test_login_failure_keyword_degrades_every_record(site):
    site.login_response = LOGIN_ERROR_PAGE
    config = _config(locations=["A", "B"], time_slots=["09:00-11:00", "11:00-13:00"], dates=[])

    async with site.session() as session:
        records = await CheckOrchestrator().run_check(config, session)

    assert len(records) == 4
    assert all(record.status is AvailabilityStatus.UNAVAILABLE for record in records)
    assert {record.court_label for record in records} == {"login failed: パスワードが正しくありません"}


@pytest.mark.asyncio
async def test_missing_target_link(site):
    site.pages["/web/rsvWMenuAction.do"] = "<html><body>メニュー<a href='news.do'>お知らせ</a></body></html>"

    async with site.session() as session:
        records = await CheckOrchestrator().run_check(_config(), session)

    assert [record.court_label for record in records] == ["target page not found"]


@pytest.mark.asyncio
async def test_target_page_error_status(site):
    site.pages["/web/rsvWTransInstSrchVacantAction.do"] = None

    async with site.session() as session:
        records = await CheckOrchestrator().run_check(_config(), session)

    assert records[0].court_label == "target page unreachable: HTTP 404"
    assert records[0].status is AvailabilityStatus.UNAVAILABLE


@pytest.mark.asyncio
async def test_page_without_court_rows_uses_parser_sentinel(site):
    site.pages["/web/rsvWTransInstSrchVacantAction.do"] = "<p>メンテナンス中</p>"

    async with site.session() as session:
        records = await CheckOrchestrator().run_check(_config(), session)

    assert [record.court_label for record in records] == ["no data"]


@pytest.mark.asyncio
async def test_unexpected_error_is_absorbed(site):
    class ExplodingParser:
        def parse(self, page, config, observed_at=None):
            raise KeyError("boom")

        def sentinel_records(self, config, label, observed_at=None):
            from kouen_watch.parser import AvailabilityParser

            return AvailabilityParser().sentinel_records(config, label, observed_at)

    orchestrator = CheckOrchestrator(ExplodingParser())
    async with site.session() as session:
        records = await orchestrator.run_check(_config(), session)

    assert len(records) == 1
    assert records[0].court_label.startswith("unexpected error:")


def test_find_target_links_skips_script_links():
    html = """
    <a href="javascript:doSubmit('tennis')">テニス</a>
    <a href="#top">テニス</a>
    <a href="srch.do?type=tennis">テニス 検索</a>
    """
    links = CheckOrchestrator().find_target_links(html, "https://kouen.example.jp/web/menu.do")

    assert [link.href for link in links] == ["https://kouen.example.jp/web/srch.do?type=tennis"]
