"""
工具函数集合 - wademo 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir
- 字符串工具：truncate_string
- 消息工具：message_text, is_newsletter_jid
"""

from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def message_text(msg: dict[str, Any]) -> str | None:
    """
    提取消息的纯文本内容。

    依次尝试 message.conversation 和 message.extendedTextMessage.text，
    都没有时（图片、语音等）返回 None。
    """
    content = msg.get("message") or {}
    return content.get("conversation") or (content.get("extendedTextMessage") or {}).get("text")


def is_newsletter_jid(jid: str | None) -> bool:
    """判断 JID 是否为频道（newsletter）地址。"""
    return bool(jid) and jid.endswith("@newsletter")
