"""
会话句柄 - 一次协议连接的外部代理对象。

协议引擎（加密、帧、历史同步）不在本项目内实现，而是运行在 Node.js
桥接服务中（@whiskeysockets/baileys）。Python 端只关心：
- 一条有序的事件包流（events()）
- 少量命令（发消息、在线状态、已读、配对码、占位重发、历史拉取、头像）

- SessionHandle：句柄抽象接口，控制器只依赖这个接口
- BridgeSession：通过 WebSocket 与桥接服务交换 JSON 帧的实现

消息协议（Python <-> Bridge）：
- auth：发送认证令牌（配置了 bridge token 时）
- init：发送已保存的凭证，桥接据此建立协议会话
- call / result：命令调用及其结果（按 id 配对）
- events：事件包 {事件种类名: 数据}
- retry / retryCount：桥接报告某条消息解密/加密失败，Python 端递增计数后回传
- error：桥接服务报告的错误

每次会话重启都会创建一个新的句柄；旧句柄关闭时，尚未返回的命令
以 OperationFailed 结束。
"""

import asyncio
import contextlib
import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from wademo.cache.retry_counter import RetryCounterCache
from wademo.config.schema import BridgeConfig
from wademo.errors import ConnectionFailure, OperationFailed
from wademo.utils.helpers import truncate_string


class SessionHandle(ABC):
    """
    会话句柄抽象基类。

    属性:
        creds: 本次会话使用的凭证字典（控制器会原地合并 creds.update）
        retry_counter: 进程级共享的消息重试计数表
    """

    def __init__(self, creds: dict[str, Any], retry_counter: RetryCounterCache):
        self.creds = creds
        self.retry_counter = retry_counter

    @property
    def registered(self) -> bool:
        """账号是否已完成注册（已注册时不需要配对码）。"""
        return bool(self.creds.get("registered"))

    @abstractmethod
    async def connect(self) -> None:
        """建立连接。失败时抛出 ConnectionFailure。"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """关闭连接并放弃所有未完成的命令。"""
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[dict[str, Any]]:
        """按到达顺序产出事件包；连接结束时迭代结束。"""
        pass

    @abstractmethod
    async def send_message(self, jid: str, content: dict[str, Any]) -> Any:
        pass

    @abstractmethod
    async def send_presence_update(self, presence: str, jid: str) -> None:
        pass

    @abstractmethod
    async def presence_subscribe(self, jid: str) -> None:
        pass

    @abstractmethod
    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        pass

    @abstractmethod
    async def request_pairing_code(self, phone_number: str) -> str:
        pass

    @abstractmethod
    async def request_placeholder_resend(self, key: dict[str, Any]) -> str | None:
        pass

    @abstractmethod
    async def fetch_message_history(
        self, count: int, oldest_key: dict[str, Any], oldest_timestamp: Any
    ) -> str:
        pass

    @abstractmethod
    async def profile_picture_url(self, jid: str) -> str | None:
        pass


class BridgeSession(SessionHandle):
    """
    基于 Node.js 桥接服务的会话句柄。

    架构：Python <-> WebSocket <-> Node.js Bridge <-> WhatsApp Web
    """

    def __init__(
        self,
        config: BridgeConfig,
        creds: dict[str, Any],
        retry_counter: RetryCounterCache,
    ):
        super().__init__(creds, retry_counter)
        self.config = config
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._batches: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._pending: dict[int, tuple[str, asyncio.Future]] = {}
        self._next_id = 0
        self._closing = False

    async def connect(self) -> None:
        logger.info(f"Connecting to WhatsApp bridge at {self.config.url}...")
        try:
            self._ws = await websockets.connect(self.config.url)
            if self.config.token:
                await self._send({"type": "auth", "token": self.config.token})
            await self._send({"type": "init", "creds": self.creds})
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            await self._drop_socket()
            raise ConnectionFailure(f"WhatsApp bridge unreachable at {self.config.url}: {e}", cause=e) from e

        self._reader = asyncio.create_task(self._read_loop())
        logger.info("Connected to WhatsApp bridge")

    async def close(self) -> None:
        self._closing = True
        if self._ws:
            await self._ws.close()
            self._ws = None
        if self._reader:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        self._fail_pending("session closed")

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            batch = await self._batches.get()
            if batch is None:
                return
            yield batch

    # ------------------------------------------------------------------
    # 命令
    # ------------------------------------------------------------------

    async def send_message(self, jid: str, content: dict[str, Any]) -> Any:
        return await self._call("sendMessage", jid, content)

    async def send_presence_update(self, presence: str, jid: str) -> None:
        await self._call("sendPresenceUpdate", presence, jid)

    async def presence_subscribe(self, jid: str) -> None:
        await self._call("presenceSubscribe", jid)

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        await self._call("readMessages", keys)

    async def request_pairing_code(self, phone_number: str) -> str:
        return await self._call("requestPairingCode", phone_number)

    async def request_placeholder_resend(self, key: dict[str, Any]) -> str | None:
        return await self._call("requestPlaceholderResend", key)

    async def fetch_message_history(
        self, count: int, oldest_key: dict[str, Any], oldest_timestamp: Any
    ) -> str:
        return await self._call("fetchMessageHistory", count, oldest_key, oldest_timestamp)

    async def profile_picture_url(self, jid: str) -> str | None:
        return await self._call("profilePictureUrl", jid)

    # ------------------------------------------------------------------
    # 帧收发
    # ------------------------------------------------------------------

    async def _send(self, payload: dict[str, Any]) -> None:
        await self._ws.send(json.dumps(payload))

    async def _call(self, method: str, *args: Any) -> Any:
        """
        发送 call 帧并等待同 id 的 result 帧。

        异常:
            OperationFailed: 未连接、桥接返回 error、超时或连接中断
        """
        if self._ws is None:
            raise OperationFailed(method, "bridge not connected")

        self._next_id += 1
        call_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = (method, future)
        try:
            await self._send({"type": "call", "id": call_id, "method": method, "args": list(args)})
            return await asyncio.wait_for(future, timeout=self.config.request_timeout)
        except asyncio.TimeoutError as e:
            raise OperationFailed(method, f"no reply within {self.config.request_timeout}s") from e
        except ConnectionClosed as e:
            raise OperationFailed(method, e) from e
        finally:
            self._pending.pop(call_id, None)

    async def _read_loop(self) -> None:
        """持续读取桥接帧；连接意外断开时补发一个 close 事件通知控制器重启。"""
        try:
            async for raw in self._ws:
                try:
                    await self._handle_frame(raw)
                except Exception as e:
                    logger.error(f"Error handling bridge frame: {e}")
        except ConnectionClosed as e:
            logger.warning(f"WhatsApp bridge connection closed: {e}")
        finally:
            self._fail_pending("bridge connection closed")
            if not self._closing:
                self._batches.put_nowait({
                    "connection.update": {
                        "connection": "close",
                        "lastDisconnect": {"error": {"message": "bridge connection lost"}},
                    }
                })
            self._batches.put_nowait(None)

    async def _handle_frame(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON from bridge: {truncate_string(str(raw))}")
            return

        frame_type = data.get("type")

        if frame_type == "events":
            self._batches.put_nowait(data.get("events") or {})

        elif frame_type == "result":
            method, future = self._pending.get(data.get("id"), (None, None))
            if future is None or future.done():
                logger.debug(f"Dropping result for unknown call id {data.get('id')}")
            elif data.get("error"):
                future.set_exception(OperationFailed(method, data["error"]))
            else:
                future.set_result(data.get("result"))

        elif frame_type == "retry":
            # 计数表在句柄之外，重启不会清零
            message_id = data.get("messageId")
            count = self.retry_counter.increment(message_id)
            logger.debug(f"Message {message_id} failed to decrypt/encrypt, retry count {count}")
            await self._send({"type": "retryCount", "messageId": message_id, "count": count})

        elif frame_type == "error":
            logger.error(f"WhatsApp bridge error: {data.get('error')}")

        else:
            logger.debug(f"Unknown bridge frame type: {frame_type}")

    async def _drop_socket(self) -> None:
        """握手失败时丢弃半开的连接。"""
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.debug(f"Ignoring error while dropping bridge socket: {e}")

    def _fail_pending(self, reason: str) -> None:
        for method, future in self._pending.values():
            if not future.done():
                future.set_exception(OperationFailed(method, reason))
        self._pending.clear()
