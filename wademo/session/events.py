"""
会话事件类型定义 - 把桥接服务推送的事件包解析为带类型的事件对象。

桥接服务每次推送一个事件包（dict），键为事件种类名，值为该种类的数据，
例如 {"connection.update": {...}, "messages.upsert": {...}}。
一个事件包中可以同时出现多个种类。

本模块为每个事件种类定义一个 dataclass，parse_batch() 按固定顺序
把事件包展开为事件列表，交给 EventDispatcher 逐个处理。

处理顺序：
connection.update → creds.update → labels.association → labels.edit → call
→ messaging-history.set → messages.upsert → messages.update
→ message-receipt.update → messages.reaction → presence.update
→ chats.update → contacts.update → chats.delete
"""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

# DisconnectReason.loggedOut
LOGGED_OUT_STATUS = 401

# proto.HistorySync.HistorySyncType.ON_DEMAND
HISTORY_SYNC_ON_DEMAND = 6


@dataclass
class SessionEvent:
    """所有会话事件的基类。kind 为桥接协议中的事件种类名。"""

    kind = ""


@dataclass
class ConnectionUpdate(SessionEvent):
    """
    连接状态变化。

    属性:
        connection: "connecting" / "open" / "close"，未变化时为 None
        status_code: 断开原因的状态码（lastDisconnect.error.output.statusCode）
        reason: 断开原因描述
        qr: 二维码字符串（需要扫码登录时出现）
        raw: 原始数据，用于日志输出
    """

    kind = "connection.update"

    connection: str | None = None
    status_code: int | None = None
    reason: str = ""
    qr: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_logged_out(self) -> bool:
        return self.status_code == LOGGED_OUT_STATUS


@dataclass
class CredsUpdate(SessionEvent):
    """凭证增量更新，需合并后立即持久化。"""

    kind = "creds.update"

    creds: dict[str, Any] = field(default_factory=dict)


@dataclass
class MessagesUpsert(SessionEvent):
    """
    新消息到达。

    属性:
        messages: WebMessageInfo 字典列表
        type: "notify"（实时新消息）或 "append"（补录）
        request_id: 占位消息重发请求的 ID（该批消息是对该请求的响应时存在）
    """

    kind = "messages.upsert"

    messages: list[dict[str, Any]] = field(default_factory=list)
    type: str = ""
    request_id: str | None = None


@dataclass
class MessagesUpdate(SessionEvent):
    """消息状态更新（送达、删除、投票等），每项为 {"key": ..., "update": ...}。"""

    kind = "messages.update"

    updates: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class HistorySet(SessionEvent):
    """历史消息同步结果。"""

    kind = "messaging-history.set"

    chats: list[Any] = field(default_factory=list)
    contacts: list[Any] = field(default_factory=list)
    messages: list[Any] = field(default_factory=list)
    is_latest: bool | None = None
    progress: float | None = None
    sync_type: int | str | None = None

    @property
    def is_on_demand(self) -> bool:
        return self.sync_type in (HISTORY_SYNC_ON_DEMAND, "ON_DEMAND")


@dataclass
class ContactsUpdate(SessionEvent):
    """联系人信息更新（头像变化时 imgUrl 字段出现）。"""

    kind = "contacts.update"

    contacts: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PassthroughEvent(SessionEvent):
    """只需记录到日志的事件种类的公共基类。"""

    payload: Any = None


@dataclass
class LabelsAssociation(PassthroughEvent):
    kind = "labels.association"


@dataclass
class LabelsEdit(PassthroughEvent):
    kind = "labels.edit"


@dataclass
class CallEvent(PassthroughEvent):
    kind = "call"


@dataclass
class ReceiptUpdate(PassthroughEvent):
    kind = "message-receipt.update"


@dataclass
class MessagesReaction(PassthroughEvent):
    kind = "messages.reaction"


@dataclass
class PresenceUpdate(PassthroughEvent):
    kind = "presence.update"


@dataclass
class ChatsUpdate(PassthroughEvent):
    kind = "chats.update"


@dataclass
class ChatsDelete(PassthroughEvent):
    kind = "chats.delete"


def _connection_update(data: dict[str, Any]) -> ConnectionUpdate:
    data = data or {}
    error = (data.get("lastDisconnect") or {}).get("error") or {}
    status_code = (error.get("output") or {}).get("statusCode")
    return ConnectionUpdate(
        connection=data.get("connection"),
        status_code=status_code,
        reason=error.get("message", ""),
        qr=data.get("qr"),
        raw=data,
    )


def _messages_upsert(data: dict[str, Any]) -> MessagesUpsert:
    data = data or {}
    return MessagesUpsert(
        messages=data.get("messages") or [],
        type=data.get("type", ""),
        request_id=data.get("requestId"),
    )


def _history_set(data: dict[str, Any]) -> HistorySet:
    data = data or {}
    return HistorySet(
        chats=data.get("chats") or [],
        contacts=data.get("contacts") or [],
        messages=data.get("messages") or [],
        is_latest=data.get("isLatest"),
        progress=data.get("progress"),
        sync_type=data.get("syncType"),
    )


# 事件种类 → 解析函数（插入顺序即处理顺序）
_PARSERS = {
    ConnectionUpdate.kind: _connection_update,
    CredsUpdate.kind: lambda data: CredsUpdate(creds=data or {}),
    LabelsAssociation.kind: lambda data: LabelsAssociation(payload=data),
    LabelsEdit.kind: lambda data: LabelsEdit(payload=data),
    CallEvent.kind: lambda data: CallEvent(payload=data),
    HistorySet.kind: _history_set,
    MessagesUpsert.kind: _messages_upsert,
    MessagesUpdate.kind: lambda data: MessagesUpdate(updates=data or []),
    ReceiptUpdate.kind: lambda data: ReceiptUpdate(payload=data),
    MessagesReaction.kind: lambda data: MessagesReaction(payload=data),
    PresenceUpdate.kind: lambda data: PresenceUpdate(payload=data),
    ChatsUpdate.kind: lambda data: ChatsUpdate(payload=data),
    ContactsUpdate.kind: lambda data: ContactsUpdate(contacts=data or []),
    ChatsDelete.kind: lambda data: ChatsDelete(payload=data),
}

EVENT_KINDS = tuple(_PARSERS)


def parse_batch(events: dict[str, Any]) -> list[SessionEvent]:
    """
    将一个事件包展开为有序的事件列表。

    未知的事件种类记录 debug 日志后忽略。

    参数:
        events: 事件包 {事件种类名: 数据}

    返回:
        按固定处理顺序排列的事件对象列表
    """
    for kind in events:
        if kind not in _PARSERS:
            logger.debug(f"Ignoring unknown event kind: {kind}")

    return [parse(events[kind]) for kind, parse in _PARSERS.items() if kind in events]
