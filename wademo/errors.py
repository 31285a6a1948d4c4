"""
异常类型定义 - wademo 连接生命周期与缓存层的统一错误分类。

错误分类与传播规则：
- ConnectionFailure：Redis 或会话传输层无法建立/维持连接。
  Redis 侧在重试策略耗尽后变为终态，必须显式重新 connect()。
- NotConnected：在缓存客户端未就绪时调用了存储操作。
- ProtocolTerminal：会话已登出，必须由用户重新配对，生命周期就此终止。
- OperationFailed：单次存储调用或会话命令失败，属于局部错误，
  事件分发器记录日志后继续处理下一个事件。
"""

from typing import Any


class WademoError(Exception):
    """wademo 所有自定义异常的基类。"""


class ConnectionFailure(WademoError):
    """
    连接失败 - 底层连接无法建立或已彻底断开。

    属性:
        cause: 导致失败的原始异常（可能为 None）
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class NotConnected(WademoError):
    """缓存客户端未就绪（从未连接、已断开或处于 Failed 状态）。"""


class ProtocolTerminal(WademoError):
    """
    会话已登出 - 不可自动恢复，需要用户重新认证。

    属性:
        status_code: 协议返回的断开状态码（登出为 401）
    """

    def __init__(self, status_code: int | None, message: str = "session logged out"):
        super().__init__(f"{message} (status {status_code})")
        self.status_code = status_code


class OperationFailed(WademoError):
    """
    单次操作失败 - 非致命，调用方记录后继续。

    属性:
        operation: 失败的操作名（如 "get"、"sendMessage"）
        cause: 原始异常或桥接服务返回的错误描述
    """

    def __init__(self, operation: str, cause: Any = None):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause
