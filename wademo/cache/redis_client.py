"""
Redis 客户端包装 - 连接、关闭、读写、删除、批量操作与过期时间管理。

本模块实现了 RedisClient，是 wademo 缓存层的唯一出口：
- 会话控制器用它缓存配对码（pairing_code:<手机号>，5 分钟过期）
- CLI 的 cache 子命令用它查看和演示缓存内容

连接状态机（CacheState）：
  DISCONNECTED --connect()--> CONNECTING --握手成功--> CONNECTED
  CONNECTED --命令断线--> CONNECTING（重连中）--重连成功--> CONNECTED
  CONNECTING --超过 max_retries--> FAILED
  任意状态 --disconnect()--> DISCONNECTED

FAILED 与 DISCONNECTED 不同：FAILED 不会自愈，必须重新调用 connect()。

重连策略由 redis-py 的 Retry 执行，退避时间由 LinearBackoff 计算：
  第 n 次重试等待 min(n × 50ms, 500ms)

错误约定：
- 未就绪时调用任何存储操作 → NotConnected（不会泄漏底层传输异常）
- 重连耗尽 → 状态转为 FAILED 并抛出 ConnectionFailure
- 其他 Redis 错误（如对非数字值 INCR）→ OperationFailed
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

import redis.asyncio as redis
from loguru import logger
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from wademo.cache.codec import decode, encode
from wademo.config.schema import RedisConfig
from wademo.errors import ConnectionFailure, NotConnected, OperationFailed

# 线性退避参数（秒）
BACKOFF_STEP = 0.05
BACKOFF_CAP = 0.5


class CacheState(str, Enum):
    """缓存连接状态。"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class LinearBackoff(AbstractBackoff):
    """
    线性退避：delay = min(attempt × step, cap)。

    redis-py 每次重试前调用 compute(failures)，failures 从 1 开始计数。
    on_retry 回调用于记录日志和更新连接状态。
    deepcopy 返回同一个实例，所有连接共享同一个回调。
    """

    def __init__(
        self,
        step: float = BACKOFF_STEP,
        cap: float = BACKOFF_CAP,
        on_retry: Callable[[int, float], None] | None = None,
    ):
        self.step = step
        self.cap = cap
        self.on_retry = on_retry

    def __deepcopy__(self, memo: dict) -> "LinearBackoff":
        # redis-py 为每个连接 deepcopy 一份 Retry；回调必须指向原客户端
        return self

    def reset(self) -> None:
        pass

    def compute(self, failures: int) -> float:
        delay = min(failures * self.step, self.cap)
        if self.on_retry:
            self.on_retry(failures, delay)
        return delay


class RedisClient:
    """
    Redis 客户端包装类。

    属性:
        config: Redis 连接配置
        state: 当前连接状态（CacheState）
        _client: redis.asyncio.Redis 实例，connect() 之前为 None
        _client_factory: 创建底层客户端的可调用对象，默认为 redis.Redis
    """

    def __init__(
        self,
        config: RedisConfig,
        client_factory: Callable[..., redis.Redis] | None = None,
    ):
        """
        初始化客户端（不建立连接）。

        参数:
            config: Redis 连接配置
            client_factory: 可选的底层客户端工厂，接收与 redis.Redis 相同的关键字参数
        """
        self.config = config
        self.state = CacheState.DISCONNECTED
        self._client: redis.Redis | None = None
        self._client_factory = client_factory or redis.Redis

    # ------------------------------------------------------------------
    # 连接管理
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        连接到 Redis 并执行 PING 握手。

        连接失败时状态转为 FAILED，并抛出携带原始异常的 ConnectionFailure。
        本层不做额外重试，重试完全交给 LinearBackoff + Retry。
        """
        if self._client is not None:
            await self._close_quietly()

        logger.info(f"Connecting to Redis at {self.config.host}:{self.config.port} (db {self.config.db})...")
        self.state = CacheState.CONNECTING

        backoff = LinearBackoff(on_retry=self._on_retry)
        self._client = self._client_factory(
            host=self.config.host,
            port=self.config.port,
            db=self.config.db,
            password=self.config.password,
            socket_connect_timeout=self.config.connect_timeout,
            retry=Retry(backoff, self.config.max_retries),
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
            decode_responses=True,
        )

        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            self.state = CacheState.FAILED
            logger.error(f"Redis connection failed: {e}")
            raise ConnectionFailure(f"Redis connection failed: {e}", cause=e) from e

        self.state = CacheState.CONNECTED
        logger.info("Redis connected")

    async def disconnect(self) -> None:
        """关闭 Redis 连接。未连接时调用为空操作。"""
        if self._client is None:
            return

        logger.info("Closing Redis connection...")
        client, self._client = self._client, None
        self.state = CacheState.DISCONNECTED
        try:
            await client.aclose()
        except RedisError as e:
            logger.error(f"Error while closing Redis connection: {e}")
            raise OperationFailed("disconnect", e) from e
        logger.info("Redis connection closed")

    def is_ready(self) -> bool:
        """仅当 connect() 成功且之后未出现致命错误时返回 True。"""
        return self.state == CacheState.CONNECTED and self._client is not None

    def _on_retry(self, attempt: int, delay: float) -> None:
        """重连回调：由 LinearBackoff 在每次重试前调用。"""
        self.state = CacheState.CONNECTING
        logger.warning(f"Redis connection lost, retry {attempt}/{self.config.max_retries} in {int(delay * 1000)}ms...")

    async def _close_quietly(self) -> None:
        client, self._client = self._client, None
        try:
            await client.aclose()
        except RedisError as e:
            logger.debug(f"Ignoring error while dropping stale Redis client: {e}")

    def _require_client(self) -> redis.Redis:
        if not self.is_ready():
            raise NotConnected(f"Redis client is not connected (state: {self.state.value})")
        return self._client

    async def _run(self, operation: str, pending: Awaitable[Any]) -> Any:
        """
        执行一次 Redis 命令并统一转换异常。

        参数:
            operation: 操作名，用于日志和 OperationFailed
            pending: 已创建的命令协程
        """
        try:
            result = await pending
        except (RedisConnectionError, RedisTimeoutError) as e:
            # Retry 已耗尽 max_retries 次重连
            self.state = CacheState.FAILED
            logger.error(f"Redis gave up after {self.config.max_retries} retries during {operation}: {e}")
            raise ConnectionFailure(f"Redis connection lost during {operation}", cause=e) from e
        except RedisError as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise OperationFailed(operation, e) from e

        if self.state == CacheState.CONNECTING:
            self.state = CacheState.CONNECTED
            logger.info("Redis reconnected")
        return result

    # ------------------------------------------------------------------
    # 单键操作
    # ------------------------------------------------------------------

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        设置 key-value 对。

        参数:
            key: Redis key
            value: 值（通过 codec 自动编码）
            ttl: 过期时间（秒），可选
        """
        client = self._require_client()
        text = encode(value)
        if ttl:
            await self._run("set", client.set(key, text, ex=ttl))
            logger.debug(f"Set key {key!r} (expires in {ttl}s)")
        else:
            await self._run("set", client.set(key, text))
            logger.debug(f"Set key {key!r}")

    async def get(self, key: str, default: Any = None) -> Any:
        """
        获取 key 对应的值。

        参数:
            key: Redis key
            default: key 不存在时返回的值。需要区分"不存在"和"存储了 None"时，
                     传入自定义哨兵对象

        返回:
            解码后的值，或 default
        """
        client = self._require_client()
        text = await self._run("get", client.get(key))
        if text is None:
            logger.debug(f"Key {key!r} does not exist")
            return default
        logger.debug(f"Read key {key!r}")
        return decode(text)

    async def delete(self, keys: str | Sequence[str]) -> int:
        """
        删除一个或多个 key。

        参数:
            keys: 单个 key 或 key 序列

        返回:
            实际删除的数量（都不存在时为 0）
        """
        client = self._require_client()
        key_list = [keys] if isinstance(keys, str) else list(keys)
        if not key_list:
            return 0
        deleted = await self._run("delete", client.delete(*key_list))
        logger.debug(f"Deleted {deleted} key(s): {key_list}")
        return deleted

    async def exists(self, key: str) -> bool:
        """检查 key 是否存在。"""
        client = self._require_client()
        return await self._run("exists", client.exists(key)) == 1

    async def ttl(self, key: str) -> int:
        """
        获取 key 的剩余过期时间（秒）。

        返回:
            剩余秒数；-1 表示永不过期，-2 表示 key 不存在
        """
        client = self._require_client()
        return await self._run("ttl", client.ttl(key))

    async def expire(self, key: str, seconds: int) -> bool:
        """为已存在的 key 设置过期时间，key 不存在时返回 False。"""
        client = self._require_client()
        result = await self._run("expire", client.expire(key, seconds))
        logger.debug(f"Expire {key!r} in {seconds}s: {bool(result)}")
        return bool(result)

    async def incr(self, key: str, amount: int = 1) -> int:
        """按 amount 递增数值（key 不存在时从 0 开始）。"""
        client = self._require_client()
        return await self._run("incr", client.incrby(key, amount))

    async def decr(self, key: str, amount: int = 1) -> int:
        """按 amount 递减数值。"""
        client = self._require_client()
        return await self._run("decr", client.decrby(key, amount))

    # ------------------------------------------------------------------
    # 批量操作
    # ------------------------------------------------------------------

    async def mset(self, data: Mapping[str, Any]) -> None:
        """批量设置 key-value 对（不带过期时间）。"""
        client = self._require_client()
        if not data:
            return
        await self._run("mset", client.mset({key: encode(value) for key, value in data.items()}))
        logger.debug(f"Set {len(data)} keys")

    async def mget(self, keys: Iterable[str], default: Any = None) -> list[Any]:
        """
        批量读取。

        返回:
            与输入 keys 顺序一一对应的列表，不存在的 key 对应 default
        """
        client = self._require_client()
        key_list = list(keys)
        if not key_list:
            return []
        values = await self._run("mget", client.mget(key_list))
        logger.debug(f"Read {len(key_list)} keys")
        return [default if value is None else decode(value) for value in values]

    async def keys(self, pattern: str = "*") -> list[str]:
        """获取匹配 pattern 的 key 列表（KEYS 命令，仅用于调试和演示）。"""
        client = self._require_client()
        found = await self._run("keys", client.keys(pattern))
        logger.debug(f"Found {len(found)} keys matching {pattern!r}")
        return found

    async def flush_all(self) -> None:
        """清空所有数据库。仅用于测试和重置。"""
        client = self._require_client()
        await self._run("flush_all", client.flushall())
        logger.warning("Flushed all Redis databases")

    async def flush_db(self) -> None:
        """清空当前数据库。仅用于测试和重置。"""
        client = self._require_client()
        await self._run("flush_db", client.flushdb())
        logger.warning(f"Flushed Redis database {self.config.db}")
