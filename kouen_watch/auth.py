from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from .cookies import CookieJar
from .errors import TransportError
from .extract import absolute_url, extract_error_message, extract_login_form
from .models import LoginResult, LoginRules, LoginState, SessionState

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
DEFAULT_ACCEPT_LANGUAGE = "ja,en-US;q=0.7,en;q=0.3"
GENERIC_LOGIN_ERROR = "ログイン処理でエラーが発生しました"

DEFAULT_LOGIN_RULES = LoginRules(
    failure_keywords=["エラー", "error", "失敗", "failed", "ログインできません", "パスワードが正しくありません"],
    success_keywords=["メニュー", "ホーム", "予約", "logout", "ログアウト"],
    default_authenticated=True,
)


def classify_login_response(html: str, rules: LoginRules) -> Tuple[bool, Optional[str]]:
    """按规则判定登录是否成功，返回 (是否成功, 命中的关键字)。

    站点没有结构化的登录结果，只能在返回页面里找关键字：失败关键字优先，
    其次是成功关键字，都没命中时采用 rules.default_authenticated。
    """
    lowered = (html or "").lower()
    for keyword in rules.failure_keywords:
        if keyword and keyword.lower() in lowered:
            return False, keyword
    for keyword in rules.success_keywords:
        if keyword and keyword.lower() in lowered:
            return True, keyword
    return rules.default_authenticated, None


def _origin(url: str) -> Optional[str]:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return None
    if not parsed.scheme or not parsed.host:
        return None
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{parsed.host}{port}"


def resolve_action(page_url: str, action: str) -> str:
    """表单 action 的相对路径按登录页的 origin 解析，空 action 提交回登录页本身"""
    if not action:
        return page_url
    origin = _origin(page_url)
    return absolute_url(f"{origin}/" if origin else page_url, action)


class SessionManager:
    """持有 Cookie Jar 的站点会话，负责登录状态机和带 Cookie 的请求。

    调用方显式创建并传递该对象；同一个实例同一时间只应服务一个检查。
    """

    def __init__(
        self,
        login_url: str,
        identifier: str,
        secret: str,
        *,
        rules: Optional[LoginRules] = None,
        identifier_field: str = "userId",
        secret_field: str = "password",
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        max_redirects: int = 8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not login_url:
            raise ValueError("未配置登录地址")
        self.login_url = login_url
        self.identifier = identifier or ""
        self.secret = secret or ""
        self.rules = rules or DEFAULT_LOGIN_RULES
        self.identifier_field = identifier_field
        self.secret_field = secret_field
        self.user_agent = user_agent
        self.max_redirects = max(0, int(max_redirects))
        self.state = SessionState(cookies=CookieJar())
        self._client = httpx.AsyncClient(timeout=timeout, follow_redirects=False, transport=transport)

    @property
    def cookies(self) -> CookieJar:
        return self.state.cookies

    @property
    def authenticated(self) -> bool:
        return self.state.authenticated

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    def logout(self) -> None:
        self.state.cookies.clear()
        self.state.authenticated = False
        self.state.login_state = LoginState.ANONYMOUS
        self.state.last_error = None

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {
            "User-Agent": self.user_agent,
            "Accept": DEFAULT_ACCEPT,
            "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
        }
        cookie_header = self.state.cookies.to_header()
        if cookie_header:
            headers["Cookie"] = cookie_header
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        *,
        data: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, data=data, headers=self._headers(headers))
        except httpx.TimeoutException as exc:
            raise TransportError(f"timeout while requesting {url}", timeout=True) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            # cookie 只由 CookieJar 管理，不使用 httpx 自带的 cookie 存储
            self._client.cookies.clear()
        merged = self.state.cookies.merge_set_cookie(response.headers.get_list("set-cookie"))
        logger.debug("%s %s -> %s (cookies +%s)", method, url, response.status_code, merged)
        return response

    async def authenticated_fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """带上当前 Cookie 发送请求，并手动跟随重定向。

        非 2xx 响应原样返回；网络错误和超时抛出 TransportError。
        """
        method = method.upper()
        response = await self._send(method, url, data=data, headers=headers)
        jumps = 0
        while response.is_redirect and jumps < self.max_redirects:
            location = response.headers.get("location")
            if not location:
                break
            current_url = str(response.request.url)
            next_url = absolute_url(current_url, location)
            if response.status_code in (307, 308):
                next_method, next_data = method, data
            else:
                next_method, next_data = "GET", None
            response = await self._send(next_method, next_url, data=next_data, headers={"Referer": current_url})
            method = next_method
            jumps += 1
        return response

    # ------------------------------------------------------------------ #
    # Login state machine
    # ------------------------------------------------------------------ #

    def _fail(self, reason: str, *, html: str = "", url: Optional[str] = None) -> LoginResult:
        self.state.authenticated = False
        self.state.login_state = LoginState.FAILED
        self.state.last_error = reason
        logger.warning("登录失败: %s", reason)
        return LoginResult(success=False, state=LoginState.FAILED, reason=reason, html=html, url=url)

    async def login(self) -> LoginResult:
        """执行一次完整登录：取登录页 → 提交表单 → 判定结果。网络或站点错误不抛异常。"""
        state = self.state
        state.last_login_attempt_at = datetime.now()
        state.authenticated = False
        state.login_state = LoginState.FETCHING_LOGIN_PAGE
        if not self.identifier or not self.secret:
            logger.warning("未配置登录账号或密码，仍尝试提交登录表单")

        try:
            page = await self.authenticated_fetch(self.login_url)
        except TransportError as exc:
            return self._fail(f"login page unreachable: {exc}")
        if not page.is_success:
            return self._fail(f"login page unreachable: HTTP {page.status_code}")

        page_url = str(page.request.url)
        form = extract_login_form(page.text)
        submit_url = resolve_action(page_url, form.action_url)
        payload: Dict[str, str] = dict(form.hidden_fields)
        payload[self.identifier_field] = self.identifier
        payload[self.secret_field] = self.secret

        state.login_state = LoginState.SUBMITTING_CREDENTIALS
        headers = {"Referer": page_url}
        origin = _origin(submit_url)
        if origin:
            headers["Origin"] = origin
        logger.info("提交登录表单: %s (hidden fields: %s)", submit_url, ", ".join(sorted(form.hidden_fields)) or "-")
        try:
            response = await self.authenticated_fetch(submit_url, method="POST", data=payload, headers=headers)
        except TransportError as exc:
            return self._fail(f"login submit failed: {exc}")

        html = response.text
        final_url = str(response.request.url)
        if response.status_code >= 400:
            return self._fail(f"login submit failed: HTTP {response.status_code}", html=html, url=final_url)

        authenticated, keyword = classify_login_response(html, self.rules)
        if not authenticated:
            reason = extract_error_message(html) or GENERIC_LOGIN_ERROR
            logger.debug("登录判定关键字: %s", keyword)
            return self._fail(reason, html=html, url=final_url)

        state.authenticated = True
        state.login_state = LoginState.AUTHENTICATED
        state.last_error = None
        logger.info("登录成功 (判定依据: %s, cookies: %s)", keyword or "默认规则", len(state.cookies))
        return LoginResult(success=True, state=LoginState.AUTHENTICATED, html=html, url=final_url)
