"""
会话模块 - 会话生命周期控制、事件模型与外部协作者接口。

- SessionController：监督循环 + 事件处理（断线重启、登出终止、配对码、自动回复）
- EventDispatcher：事件类型到处理函数的路由表
- SessionHandle / BridgeSession：会话句柄接口及其桥接服务实现
- CredentialStore / FileCredentialStore：凭证持久化
"""

from wademo.session.controller import PendingPairing, SessionController, SessionState
from wademo.session.credentials import CredentialStore, FileCredentialStore
from wademo.session.dispatcher import EventDispatcher
from wademo.session.handle import BridgeSession, SessionHandle

__all__ = [
    "SessionController",
    "SessionState",
    "PendingPairing",
    "EventDispatcher",
    "SessionHandle",
    "BridgeSession",
    "CredentialStore",
    "FileCredentialStore",
]
