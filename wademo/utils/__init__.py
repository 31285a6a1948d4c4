"""
工具函数模块 - 提供 wademo 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- truncate_string：截断过长的日志内容
- message_text / is_newsletter_jid：消息字典的读取工具
"""

from wademo.utils.helpers import ensure_dir, is_newsletter_jid, message_text, truncate_string

__all__ = ["ensure_dir", "truncate_string", "message_text", "is_newsletter_jid"]
