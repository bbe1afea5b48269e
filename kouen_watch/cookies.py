from __future__ import annotations

from typing import Dict, Iterable, Optional, Union


class CookieJar:
    """进程内的会话 Cookie 存储。

    只保存 name=value，不处理过期时间、domain 和 path。同一个 jar 不应被
    两个并发的检查同时修改。
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._cookies: Dict[str, str] = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    def set(self, name: str, value: str) -> None:
        self._cookies[name] = value

    def all(self) -> Dict[str, str]:
        return dict(self._cookies)

    def clear(self) -> None:
        self._cookies.clear()

    def to_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def merge_set_cookie(self, values: Union[str, Iterable[str], None]) -> int:
        """合并一个或多个原始 Set-Cookie 头，返回写入的 cookie 数量。

        每个头按逗号切分，取每段第一个 ';' 之前的 name=value；name 或 value
        为空的段直接忽略，同名 cookie 以后出现的为准。
        """
        if not values:
            return 0
        if isinstance(values, str):
            values = [values]
        merged = 0
        for header in values:
            for chunk in header.split(","):
                pair = chunk.split(";", 1)[0].strip()
                name, sep, value = pair.partition("=")
                name = name.strip()
                value = value.strip()
                if not sep or not name or not value:
                    continue
                self.set(name, value)
                merged += 1
        return merged

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __repr__(self) -> str:
        return f"CookieJar({sorted(self._cookies)})"
