from __future__ import annotations


class MonitorError(Exception):
    """所有检查流程错误的基类，message 会原样写进降级记录"""


class TransportError(MonitorError):
    """网络错误或超时"""

    def __init__(self, message: str, *, timeout: bool = False) -> None:
        super().__init__(message)
        self.timeout = timeout


class LoginRejected(MonitorError):
    pass


class TargetNotFound(MonitorError):
    pass


class ParseEmpty(MonitorError):
    pass
