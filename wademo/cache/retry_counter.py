"""
消息重试计数缓存 - 记录每条消息解密/加密失败的次数。

计数存放在进程内，而不是会话句柄内部：
- 会话重启（创建新的句柄）不会清零计数，避免跨重启的解密重试死循环
- 进程退出后计数丢失，不做持久化

容量控制：
- max_entries：超出时淘汰最久未访问的条目（LRU）
- max_age：条目自首次记录起超过该秒数即视为过期
条目驻留期间计数只增不减；被淘汰或过期的条目下次从 0 重新计数。
"""

import time
from collections import OrderedDict
from typing import Callable


class RetryCounterCache:
    """
    有界的消息重试计数表。

    同一个实例通过引用传给每一个新建的会话句柄。
    """

    def __init__(
        self,
        max_entries: int = 1000,
        max_age: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        参数:
            max_entries: 最大条目数
            max_age: 条目最长保留时间（秒），<= 0 表示不按时间过期
            clock: 单调时钟函数，测试时可替换
        """
        self.max_entries = max_entries
        self.max_age = max_age
        self._clock = clock
        # message_id -> (count, first_seen)
        self._entries: OrderedDict[str, tuple[int, float]] = OrderedDict()

    def get(self, message_id: str) -> int:
        """返回当前计数，未记录时为 0。"""
        entry = self._live_entry(message_id)
        return entry[0] if entry else 0

    def increment(self, message_id: str) -> int:
        """
        计数加一并返回新值。

        参数:
            message_id: 消息 ID

        返回:
            递增后的计数
        """
        entry = self._live_entry(message_id)
        count, first_seen = entry if entry else (0, self._clock())
        self._entries[message_id] = (count + 1, first_seen)
        self._entries.move_to_end(message_id)
        self._evict_overflow()
        return count + 1

    def delete(self, message_id: str) -> None:
        self._entries.pop(message_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def __contains__(self, message_id: str) -> bool:
        return self._live_entry(message_id) is not None

    def _live_entry(self, message_id: str) -> tuple[int, float] | None:
        entry = self._entries.get(message_id)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[message_id]
            return None
        self._entries.move_to_end(message_id)
        return entry

    def _expired(self, entry: tuple[int, float]) -> bool:
        return self.max_age > 0 and self._clock() - entry[1] >= self.max_age

    def _purge_expired(self) -> None:
        for message_id in [k for k, entry in self._entries.items() if self._expired(entry)]:
            del self._entries[message_id]

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
