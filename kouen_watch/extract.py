"""Pattern based extraction of the few HTML fragments the checker needs.

The reservation site renders plain server-side HTML, so instead of building a
DOM we pull out only the form action, hidden inputs, anchors, tables and error
boxes with compiled regular expressions.  Every function here is pure and
returns an empty result when nothing matches; none of them raise on malformed
markup.
"""

from __future__ import annotations

import html as html_lib
import re
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from .models import Link, LoginForm

Row = List[str]
Table = List[Row]

ATTR_RE = re.compile(
    r"""(?P<name>[^\s=/>"']+)(?:\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s>"']+)))?""",
)
FORM_TAG_RE = re.compile(r"<form\b(?P<attrs>[^>]*)>", re.IGNORECASE)
INPUT_TAG_RE = re.compile(r"<input\b(?P<attrs>[^>]*)>", re.IGNORECASE)
ANCHOR_RE = re.compile(r"<a\b(?P<attrs>[^>]*)>(?P<body>.*?)</a\s*>", re.IGNORECASE | re.DOTALL)
TABLE_RE = re.compile(r"<table\b[^>]*>(?P<body>.*?)(?=<table\b|</table\s*>|$)", re.IGNORECASE | re.DOTALL)
ROW_RE = re.compile(r"<tr\b[^>]*>(?P<body>.*?)(?=<tr\b|</tr\s*>|$)", re.IGNORECASE | re.DOTALL)
CELL_RE = re.compile(r"<t[dh]\b[^>]*>(?P<body>.*?)(?=<t[dh]\b|</t[dh]\s*>|</tr\s*>|$)", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]+>")
SCRIPT_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
WHITESPACE_RE = re.compile(r"\s+")
ERROR_PATTERNS = (
    re.compile(
        r"<(?P<tag>div|span|p)\b[^>]*\bclass\s*=\s*[\"'][^\"']*error[^\"']*[\"'][^>]*>(?P<msg>.*?)</(?P=tag)\s*>",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(
        r"<(?P<tag>div|span|p)\b[^>]*\bid\s*=\s*[\"'](?:errmsg|errorMsg)[\"'][^>]*>(?P<msg>.*?)</(?P=tag)\s*>",
        re.IGNORECASE | re.DOTALL,
    ),
)


def parse_attributes(raw: str) -> Dict[str, str]:
    """解析标签属性，名字统一小写，同名属性保留第一个"""
    attrs: Dict[str, str] = {}
    for match in ATTR_RE.finditer(raw or ""):
        name = match.group("name").lower()
        if name in attrs:
            continue
        value = match.group("dq")
        if value is None:
            value = match.group("sq")
        if value is None:
            value = match.group("bare")
        attrs[name] = html_lib.unescape(value) if value is not None else ""
    return attrs


def clean_text(fragment: str) -> str:
    text = SCRIPT_RE.sub(" ", fragment or "")
    text = TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    return WHITESPACE_RE.sub(" ", text).strip()


def extract_form_action(html: str) -> str:
    for match in FORM_TAG_RE.finditer(html or ""):
        attrs = parse_attributes(match.group("attrs"))
        if "action" in attrs:
            return attrs["action"].strip()
    return ""


def extract_hidden_fields(html: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for match in INPUT_TAG_RE.finditer(html or ""):
        attrs = parse_attributes(match.group("attrs"))
        if attrs.get("type", "").strip().lower() != "hidden":
            continue
        name = attrs.get("name", "").strip()
        if not name:
            continue
        fields[name] = attrs.get("value", "")
    return fields


def extract_login_form(html: str) -> LoginForm:
    return LoginForm(action_url=extract_form_action(html), hidden_fields=extract_hidden_fields(html))


def keyword_predicate(keywords: Iterable[str]) -> Callable[[str], bool]:
    lowered = [keyword.lower() for keyword in keywords if keyword]

    def _match(text: str) -> bool:
        candidate = (text or "").lower()
        return any(keyword in candidate for keyword in lowered)

    return _match


def extract_links(html: str, predicate: Optional[Callable[[str], bool]] = None) -> List[Link]:
    links: List[Link] = []
    for match in ANCHOR_RE.finditer(html or ""):
        attrs = parse_attributes(match.group("attrs"))
        href = attrs.get("href", "").strip()
        if not href:
            continue
        text = clean_text(match.group("body"))
        if predicate is not None and not predicate(text):
            continue
        links.append(Link(href=href, text=text))
    return links


def extract_tables(html: str) -> List[Table]:
    tables: List[Table] = []
    for table_match in TABLE_RE.finditer(html or ""):
        rows: Table = []
        for row_match in ROW_RE.finditer(table_match.group("body")):
            cells = [clean_text(cell.group("body")) for cell in CELL_RE.finditer(row_match.group("body"))]
            if cells:
                rows.append(cells)
        tables.append(rows)
    return tables


def extract_error_message(html: str) -> Optional[str]:
    for pattern in ERROR_PATTERNS:
        for match in pattern.finditer(html or ""):
            message = clean_text(match.group("msg"))
            if message:
                return message
    return None


def absolute_url(base: str, target: str) -> str:
    """相对地址按所在页面解析，空地址指回页面本身"""
    try:
        base_url = httpx.URL(base)
        if not target:
            return str(base_url)
        url_obj = httpx.URL(target)
        if not url_obj.scheme:
            url_obj = base_url.join(target)
    except httpx.InvalidURL:
        return target or base
    return str(url_obj)
