"""
缓存模块 - Redis 键值缓存客户端、值编解码与进程内重试计数。

- RedisClient：带重连策略的 Redis 异步客户端包装
- encode / decode：缓存值的文本编解码（带类型标记）
- RetryCounterCache：跨会话重启保留的消息重试计数表
"""

from wademo.cache.codec import decode, encode
from wademo.cache.redis_client import CacheState, LinearBackoff, RedisClient
from wademo.cache.retry_counter import RetryCounterCache

__all__ = [
    "RedisClient",
    "CacheState",
    "LinearBackoff",
    "RetryCounterCache",
    "encode",
    "decode",
]
