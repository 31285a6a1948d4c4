"""
缓存值编解码 - 在 Python 值与 Redis 文本值之间转换。

编码规则：
- 文本（str）：在前面加上类型标记 "~" 后原样存储
- 其他值（数字、布尔、None、list、dict）：存为 JSON 文本，不加标记

"~" 不可能是合法 JSON 文档的首字符，因此本客户端写入的值在读取时
不存在歧义：看到标记就是文本，否则按 JSON 解析。
数字保持裸 JSON 形式，Redis 的 INCRBY/DECRBY 可以直接作用于它们。

兼容性说明：
- 其他客户端写入的未加标记的纯文本仍可读取（JSON 解析失败时原样返回）
- 但若这类外部文本恰好以 "~" 开头，或恰好是合法 JSON（如 "123"、"true"），
  读取结果会与写入方的本意不同，这是无法消除的往返限制
"""

import json
from typing import Any

TEXT_MARKER = "~"


def encode(value: Any) -> str:
    """
    将任意值编码为缓存文本。

    参数:
        value: 待存储的值（str 或可 JSON 序列化的对象）

    返回:
        编码后的文本

    异常:
        TypeError: 值无法 JSON 序列化（如 bytes、自定义对象）
    """
    if isinstance(value, str):
        return TEXT_MARKER + value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def decode(text: str) -> Any:
    """
    将缓存文本解码为 Python 值。永不抛出异常。

    参数:
        text: 从 Redis 读到的文本

    返回:
        带标记的文本 → 去掉标记后的字符串；合法 JSON → 解析结果；
        其他 → 原始文本
    """
    if text.startswith(TEXT_MARKER):
        return text[len(TEXT_MARKER):]
    try:
        return json.loads(text)
    except ValueError:
        return text
