"""
wademo - 多设备消息协议演示客户端

模块概述：
    本文件是 wademo 包的入口文件（__init__.py），定义了包的元信息。
    wademo 通过 Node.js 桥接服务（内部运行 @whiskeysockets/baileys）接入
    WhatsApp 多设备协议，把协议事件打印到控制台，并用 Redis 缓存少量状态。

    整个项目的核心功能包括：
    - 会话生命周期管理（断线自动重启，登出后停止）
    - 协议事件分发（连接状态、凭证更新、消息、联系人等）
    - Redis 键值缓存客户端（配对码缓存、自动重连策略）
    - 消息解密重试计数（跨会话重启保留，进程退出即丢弃）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "📱"
