"""Shared fakes for the reservation site."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from kouen_watch.auth import SessionManager

BASE = "https://kouen.example.jp"
LOGIN_URL = f"{BASE}/web/rsvWUserAttestationLoginAction.do"

LOGIN_PAGE = """
<html><head><title>ログイン</title></head><body>
<form method="post" name="loginForm" action="/web/rsvWUserAttestationLoginSubmit.do">
  <input value="tok-123" name="org.apache.struts.taglib.html.TOKEN" type="hidden">
  <input type='hidden' name='displayNo' value='pawab2000'>
  <input type="hidden" name="emptyField">
  <input type="text" name="userId" value="">
  <input type="password" name="password">
</form>
</body></html>
"""

MENU_PAGE = """
<html><body>
<div class="menu">メニュー</div>
<a href="rsvWMyPageAction.do">マイページ</a>
<a href="/web/rsvWTransInstSrchVacantAction.do?ppsd=tennis"><span>テニス</span> 空き状況</a>
<a href="rsvWLogoutAction.do">ログアウト</a>
</body></html>
"""

AVAILABILITY_PAGE = """
<html><body>
<table class="tablebg2">
  <tr><th>施設</th><th>状況</th></tr>
  <tr><td><b>人工芝コートA</b></td><td>○ 空きあり</td></tr>
  <tr><td>人工芝コートB</td><td>×</td></tr>
</table>
</body></html>
"""

LOGIN_ERROR_PAGE = """
<html><body>
<p class="error-message">パスワードが正しくありません</p>
</body></html>
"""


class FakeSite:
    """httpx.MockTransport 上的最小化预约站点"""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.submitted: Dict[str, str] = {}
        self.pages: Dict[str, Any] = {
            "/web/rsvWUserAttestationLoginAction.do": LOGIN_PAGE,
            "/web/rsvWMenuAction.do": MENU_PAGE,
            "/web/rsvWTransInstSrchVacantAction.do": AVAILABILITY_PAGE,
        }
        self.login_response: Optional[str] = None
        self.login_page_error: Optional[Exception] = None
        self.login_page_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/web/rsvWUserAttestationLoginAction.do":
            if self.login_page_error is not None:
                raise self.login_page_error
            return httpx.Response(
                self.login_page_status,
                text=LOGIN_PAGE,
                headers={"Set-Cookie": "JSESSIONID=s1; Path=/web; HttpOnly"},
            )
        if path == "/web/rsvWUserAttestationLoginSubmit.do" and request.method == "POST":
            form = parse_qs(request.content.decode("utf-8"), keep_blank_values=True)
            self.submitted = {key: values[-1] for key, values in form.items()}
            if self.login_response is not None:
                return httpx.Response(200, text=self.login_response)
            return httpx.Response(
                302,
                headers={"Location": "/web/rsvWMenuAction.do", "Set-Cookie": "AUTH=ok; Path=/"},
            )
        page = self.pages.get(path)
        if page is None:
            return httpx.Response(404, text="not found")
        if isinstance(page, Exception):
            raise page
        return httpx.Response(200, text=page)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def session(self, **kwargs: Any) -> SessionManager:
        return SessionManager(LOGIN_URL, "user01", "secret", transport=self.transport(), **kwargs)

    def last_request(self, path: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.url.path == path:
                return request
        raise AssertionError(f"no request to {path}")


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()
