"""
会话生命周期控制器 - 保持会话在短暂断线后自动恢复，登出后停止。

状态机（SessionState）：
  STARTING --connection: open--> OPEN
  OPEN/STARTING --connection: close--> CLOSING
  CLOSING --状态码 401（已登出）--> TERMINATED（run() 抛出 ProtocolTerminal）
  CLOSING --其他原因--> RESTARTING --等待 restart_delay--> STARTING（新句柄）

重启由 run() 中的监督循环完成，而不是在事件处理函数中递归启动：
同一时刻只会有一个句柄；重启进行中收到的重复 close 事件直接忽略。

控制器同时负责：
- creds.update：合并凭证并立即持久化
- 配对码：未注册且开启配对码模式时申请配对码，缓存到 Redis（5 分钟过期）
- 消息触发词：requestPlaceholder（占位消息重发）、onDemandHistSync（按需拉取历史）
- 自动回复：已读 → 订阅在线状态 → 0.5s → 正在输入 → 2s → 暂停输入 → 发送
- 重试计数：RetryCounterCache 由控制器持有并传给每个新句柄，重启不清零

任何单次句柄命令失败都只记录日志，事件处理继续进行。
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from wademo.cache.redis_client import RedisClient
from wademo.cache.retry_counter import RetryCounterCache
from wademo.config.schema import FeaturesConfig, SessionConfig
from wademo.errors import ConnectionFailure, OperationFailed, ProtocolTerminal
from wademo.session.credentials import CredentialStore
from wademo.session.dispatcher import EventDispatcher
from wademo.session.events import (
    CallEvent,
    ChatsDelete,
    ChatsUpdate,
    ConnectionUpdate,
    ContactsUpdate,
    CredsUpdate,
    HistorySet,
    LabelsAssociation,
    LabelsEdit,
    MessagesReaction,
    MessagesUpdate,
    MessagesUpsert,
    PassthroughEvent,
    PresenceUpdate,
    ReceiptUpdate,
)
from wademo.session.handle import SessionHandle
from wademo.utils.helpers import is_newsletter_jid, message_text, truncate_string

PAIRING_CODE_TTL = 300
PAIRING_KEY_PREFIX = "pairing_code:"

PLACEHOLDER_TRIGGER = "requestPlaceholder"
HISTORY_TRIGGER = "onDemandHistSync"
HISTORY_FETCH_COUNT = 50

REPLY_TEXT = "Hello there!"
SUBSCRIBE_DELAY = 0.5  # 订阅在线状态后到开始"正在输入"的间隔（秒）
TYPING_DELAY = 2.0  # "正在输入"持续时间（秒）

HandleFactory = Callable[[dict[str, Any], RetryCounterCache], SessionHandle]


class SessionState(str, Enum):
    """会话生命周期状态。"""
    STARTING = "starting"
    OPEN = "open"
    CLOSING = "closing"
    RESTARTING = "restarting"
    TERMINATED = "terminated"


def pairing_cache_key(phone_number: str) -> str:
    """配对码的缓存 key：pairing_code:<手机号>。"""
    return f"{PAIRING_KEY_PREFIX}{phone_number}"


@dataclass
class PendingPairing:
    """一次已签发的配对码。同一手机号新签发的配对码会覆盖旧的缓存条目。"""

    phone_number: str
    code: str
    issued_at: datetime = field(default_factory=datetime.now)
    ttl: int = PAIRING_CODE_TTL

    @property
    def cache_key(self) -> str:
        return pairing_cache_key(self.phone_number)


class SessionController:
    """
    会话生命周期控制器。

    属性:
        state: 当前生命周期状态
        handle: 当前会话句柄（两次会话之间为 None）
        restarts: 连续重启次数（连接打开后清零）
        sessions_started: 累计创建的句柄数量
        dispatcher: 事件分发器（所有事件种类都由本控制器处理）
    """

    def __init__(
        self,
        handle_factory: HandleFactory,
        credentials: CredentialStore,
        retry_counter: RetryCounterCache,
        cache: RedisClient | None = None,
        features: FeaturesConfig | None = None,
        session_config: SessionConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        参数:
            handle_factory: 根据凭证和重试计数表创建新句柄的工厂
            credentials: 凭证存储
            retry_counter: 进程级共享的重试计数表
            cache: Redis 客户端，用于缓存配对码；为 None 时不缓存
            features: 功能开关（自动回复、配对码）
            session_config: 会话配置（手机号、重启间隔、重启上限）
            sleep: 异步等待函数，测试时可替换
        """
        self.handle_factory = handle_factory
        self.credentials = credentials
        self.retry_counter = retry_counter
        self.cache = cache
        self.features = features or FeaturesConfig()
        self.session_config = session_config or SessionConfig()
        self._sleep = sleep

        self.state = SessionState.STARTING
        self.handle: SessionHandle | None = None
        self.restarts = 0
        self.sessions_started = 0
        self._creds: dict[str, Any] = {}
        self._running = False
        self._logout_status: int | None = None

        self.dispatcher = EventDispatcher()
        self.dispatcher.register(ConnectionUpdate, self._on_connection_update)
        self.dispatcher.register(CredsUpdate, self._on_creds_update)
        self.dispatcher.register(HistorySet, self._on_history_set)
        self.dispatcher.register(MessagesUpsert, self._on_messages_upsert)
        self.dispatcher.register(MessagesUpdate, self._on_messages_update)
        self.dispatcher.register(ContactsUpdate, self._on_contacts_update)
        for event_type in (
            LabelsAssociation, LabelsEdit, CallEvent, ReceiptUpdate,
            MessagesReaction, PresenceUpdate, ChatsUpdate, ChatsDelete,
        ):
            self.dispatcher.register(event_type, self._on_passthrough)
        self.dispatcher.ensure_complete()

    # ------------------------------------------------------------------
    # 监督循环
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        运行会话直到被 stop() 停止。

        异常:
            ProtocolTerminal: 会话已登出，需要重新配对
            ConnectionFailure: 连续重启次数超过 max_restarts
        """
        self._running = True
        while self._running:
            await self._run_session()

            if self.state == SessionState.TERMINATED:
                raise ProtocolTerminal(self._logout_status)
            if not self._running:
                break

            self.restarts += 1
            max_restarts = self.session_config.max_restarts
            if max_restarts and self.restarts > max_restarts:
                raise ConnectionFailure(f"Session gave up after {max_restarts} consecutive restarts")

            delay = self.session_config.restart_delay
            logger.info(f"Restarting session in {delay}s (restart #{self.restarts})...")
            await self._sleep(delay)

    async def stop(self) -> None:
        """停止监督循环并关闭当前句柄。"""
        self._running = False
        self.state = SessionState.CLOSING
        if self.handle:
            await self.handle.close()

    async def _run_session(self) -> None:
        """创建一个新句柄，消费它的事件流直到需要重启、终止或停止。"""
        self.state = SessionState.STARTING
        self._creds = await self.credentials.load()
        handle = self.handle_factory(self._creds, self.retry_counter)
        self.handle = handle
        self.sessions_started += 1

        try:
            try:
                await handle.connect()
            except ConnectionFailure as e:
                logger.warning(f"Session connect failed: {e}")
                self.state = SessionState.RESTARTING
                return

            async for batch in handle.events():
                await self.dispatcher.dispatch(batch)
                if self._session_over():
                    break

            if self._running and not self._session_over():
                logger.warning("Session event stream ended without a close event")
                self.state = SessionState.RESTARTING
        finally:
            await handle.close()
            self.handle = None

    def _session_over(self) -> bool:
        return not self._running or self.state in (SessionState.RESTARTING, SessionState.TERMINATED)

    def status(self) -> dict[str, Any]:
        """控制器状态快照，用于 CLI 输出。"""
        return {
            "state": self.state.value,
            "restarts": self.restarts,
            "sessions_started": self.sessions_started,
            "retry_counters": len(self.retry_counter),
        }

    # ------------------------------------------------------------------
    # 命令
    # ------------------------------------------------------------------

    async def issue_pairing_code(self, phone_number: str) -> PendingPairing:
        """
        申请配对码并缓存 5 分钟，覆盖该手机号之前的配对码。

        参数:
            phone_number: 手机号（纯数字，含国家码）

        返回:
            PendingPairing

        异常:
            OperationFailed: 当前没有会话句柄或句柄命令失败
            NotConnected / ConnectionFailure: Redis 不可用（配对码已打印，只是未缓存）
        """
        if self.handle is None:
            raise OperationFailed("requestPairingCode", "no active session")

        code = await self.handle.request_pairing_code(phone_number)
        pending = PendingPairing(phone_number=phone_number, code=code)
        logger.info(f"Pairing code: {code}")

        if self.cache is not None:
            await self.cache.set(pending.cache_key, code, ttl=pending.ttl)
        return pending

    async def send_message_with_typing(self, content: dict[str, Any], jid: str) -> None:
        """模拟真人输入节奏后发送消息。各步骤严格按顺序执行。"""
        handle = self.handle
        await handle.presence_subscribe(jid)
        await self._sleep(SUBSCRIBE_DELAY)

        await handle.send_presence_update("composing", jid)
        await self._sleep(TYPING_DELAY)

        await handle.send_presence_update("paused", jid)

        await handle.send_message(jid, content)

    async def _guarded(self, operation: str, pending: Awaitable[Any]) -> Any:
        """执行单次操作，失败时记录日志并返回 None。"""
        try:
            return await pending
        except Exception as e:
            logger.error(f"{operation} failed: {e}")
            return None

    # ------------------------------------------------------------------
    # 事件处理
    # ------------------------------------------------------------------

    async def _on_connection_update(self, event: ConnectionUpdate) -> None:
        if event.connection == "close":
            if self.state in (SessionState.RESTARTING, SessionState.TERMINATED):
                logger.debug(f"Ignoring close event, session already {self.state.value}")
                return

            self.state = SessionState.CLOSING
            if event.is_logged_out:
                self._logout_status = event.status_code
                self.state = SessionState.TERMINATED
                logger.error("Connection closed. You are logged out.")
            else:
                self.state = SessionState.RESTARTING
                logger.warning(f"Connection closed ({event.status_code}: {event.reason or 'unknown'}), will reconnect")

        logger.info(f"connection update: {event.raw}")

        if event.connection is None and self.handle is not None and not self.handle.registered:
            if self.features.use_pairing_code:
                phone_number = self.session_config.phone_number
                if phone_number:
                    await self._guarded("requestPairingCode", self.issue_pairing_code(phone_number))
                else:
                    logger.warning("Pairing code mode is on but no phone number is configured")
            if event.qr:
                logger.info(f"QR code: {event.qr}")

        if event.connection == "open":
            self.state = SessionState.OPEN
            self.restarts = 0
            logger.info("opened connection")

    async def _on_creds_update(self, event: CredsUpdate) -> None:
        self._creds.update(event.creds)
        await self.credentials.save(self._creds)

    async def _on_history_set(self, event: HistorySet) -> None:
        if event.is_on_demand:
            logger.info(f"received on-demand history sync, messages={truncate_string(json.dumps(event.messages), 500)}")
        logger.info(
            f"recv {len(event.chats)} chats, {len(event.contacts)} contacts, {len(event.messages)} msgs "
            f"(is latest: {event.is_latest}, progress: {event.progress}%), type: {event.sync_type}"
        )

    async def _on_messages_upsert(self, event: MessagesUpsert) -> None:
        logger.info(f"recv {len(event.messages)} messages, type: {event.type}")
        logger.debug(json.dumps(event.messages, indent=2))

        if event.request_id:
            logger.info(f"placeholder message received for request of id={event.request_id}")

        if event.type != "notify":
            return

        for msg in event.messages:
            text = message_text(msg)
            if not text:
                continue
            key = msg.get("key") or {}

            if text == PLACEHOLDER_TRIGGER and not event.request_id:
                message_id = await self._guarded(
                    "requestPlaceholderResend", self.handle.request_placeholder_resend(key)
                )
                logger.info(f"requested placeholder resync, id={message_id}")

            # 在旧的聊天窗口中发送该触发词
            if text == HISTORY_TRIGGER:
                message_id = await self._guarded(
                    "fetchMessageHistory",
                    self.handle.fetch_message_history(HISTORY_FETCH_COUNT, key, msg.get("messageTimestamp")),
                )
                logger.info(f"requested on-demand sync, id={message_id}")

            jid = key.get("remoteJid")
            if self.features.do_reply and not key.get("fromMe") and jid and not is_newsletter_jid(jid):
                logger.info(f"replying to {jid}")
                await self._guarded("auto-reply", self._reply(key, jid))

    async def _reply(self, key: dict[str, Any], jid: str) -> None:
        await self.handle.read_messages([key])
        await self.send_message_with_typing({"text": REPLY_TEXT}, jid)

    async def _on_messages_update(self, event: MessagesUpdate) -> None:
        logger.info(json.dumps(event.updates, indent=2))
        for item in event.updates:
            update = item.get("update") or {}
            if update.get("pollUpdates"):
                key = item.get("key") or {}
                logger.info(f"got poll update for {key.get('id')}: {update['pollUpdates']}")

    async def _on_contacts_update(self, event: ContactsUpdate) -> None:
        for contact in event.contacts:
            if "imgUrl" not in contact:
                continue
            new_url = None
            if contact["imgUrl"] is not None:
                try:
                    new_url = await self.handle.profile_picture_url(contact.get("id"))
                except Exception as e:
                    logger.debug(f"profilePictureUrl failed for {contact.get('id')}: {e}")
            logger.info(f"contact {contact.get('id')} has a new profile pic: {new_url}")

    async def _on_passthrough(self, event: PassthroughEvent) -> None:
        logger.info(f"recv {event.kind} event: {event.payload}")
