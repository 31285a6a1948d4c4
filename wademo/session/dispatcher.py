"""
事件分发器 - 把事件包中的每个事件路由到对应的处理函数。

分发规则：
- 每个事件类型（events.py 中的 dataclass）恰好对应一个处理函数
- ensure_complete() 检查所有已知事件种类都已注册，漏注册在启动时就报错
- 事件严格按顺序逐个处理，不并发；一个处理函数抛出的异常只记录日志，
  不影响同一事件包中后续事件的处理
"""

from typing import Any, Awaitable, Callable

from loguru import logger

from wademo.session.events import EVENT_KINDS, SessionEvent, parse_batch

EventHandler = Callable[[Any], Awaitable[None]]


class EventDispatcher:
    """事件类型 → 处理函数的路由表。"""

    def __init__(self):
        self._handlers: dict[type[SessionEvent], EventHandler] = {}

    def register(self, event_type: type[SessionEvent], handler: EventHandler) -> None:
        """注册处理函数。同一事件类型重复注册时后者覆盖前者。"""
        self._handlers[event_type] = handler

    def ensure_complete(self) -> None:
        """
        检查每个已知事件种类都有处理函数。

        异常:
            RuntimeError: 存在未注册的事件种类
        """
        covered = {event_type.kind for event_type in self._handlers}
        missing = [kind for kind in EVENT_KINDS if kind not in covered]
        if missing:
            raise RuntimeError(f"No handler registered for event kinds: {', '.join(missing)}")

    async def dispatch(self, batch: dict[str, Any]) -> int:
        """
        处理一个事件包。

        参数:
            batch: 事件包 {事件种类名: 数据}

        返回:
            处理失败的事件数量
        """
        failures = 0
        for event in parse_batch(batch):
            handler = self._handlers[type(event)]
            try:
                await handler(event)
            except Exception as e:
                failures += 1
                logger.error(f"Error handling {event.kind} event: {e}")
        return failures
