"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 wademo 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── redis     - Redis 连接参数（地址、数据库、超时、最大重试次数）
├── bridge    - Node.js 桥接服务参数（WebSocket 地址、令牌、凭证目录）
├── features  - 功能开关（自动回复、配对码登录）
├── session   - 会话生命周期参数（手机号、重启间隔、重试计数缓存容量）
└── logging   - 日志级别与日志文件
"""

from pathlib import Path
from pydantic import BaseModel, Field, ConfigDict
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


class RedisConfig(BaseModel):
    """Redis 连接配置。"""
    host: str = "localhost"
    port: int = 6379
    password: str | None = None  # 需要认证时填写
    db: int = 0  # 逻辑数据库编号
    connect_timeout: float = 5.0  # 建立连接的超时（秒）
    max_retries: int = 3  # 单次命令断线后的最大重连次数，超过后客户端进入 Failed 状态


class BridgeConfig(BaseModel):
    """
    桥接服务配置。
    Python 端通过 WebSocket 与运行 baileys 的 Node.js 桥接进程交换 JSON 帧。
    """
    url: str = "ws://localhost:3001"  # 桥接服务的 WebSocket 地址
    token: str = ""  # 桥接认证令牌（可选）
    request_timeout: float = 30.0  # 单次命令等待桥接回复的超时（秒）
    auth_dir: str = "~/.wademo/auth"  # 凭证文件目录（删除后需重新配对）


class FeaturesConfig(BaseModel):
    """功能开关。命令行的 --do-reply / --use-pairing-code 会覆盖这里的值。"""
    do_reply: bool = False  # 收到消息后自动回复 "Hello there!"
    use_pairing_code: bool = False  # 使用 8 位配对码而不是二维码登录


class SessionConfig(BaseModel):
    """会话生命周期配置。"""
    phone_number: str = ""  # 配对码登录使用的手机号（纯数字，含国家码）
    restart_delay: float = 3.0  # 非登出断开后，重建会话前的等待时间（秒）
    max_restarts: int = 0  # 连续重启次数上限，0 表示不限
    retry_counter_max_entries: int = 1000  # 重试计数缓存的最大条目数（LRU 淘汰）
    retry_counter_max_age: float = 3600.0  # 重试计数条目的最长保留时间（秒）


class LoggingConfig(BaseModel):
    """日志配置（loguru）。"""
    level: str = "INFO"
    file: str = ""  # 额外写入的日志文件路径，为空时只输出到终端


class Config(BaseSettings):
    """
    wademo 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: WADEMO_
    - 嵌套分隔符: __ (双下划线)
    - 示例: WADEMO_REDIS__HOST=10.0.0.5 可覆盖 redis.host
    - 环境变量同样覆盖 config.json 中的同名配置项
    """
    redis: RedisConfig = Field(default_factory=RedisConfig)  # Redis 连接配置
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)  # 桥接服务配置
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)  # 功能开关
    session: SessionConfig = Field(default_factory=SessionConfig)  # 会话生命周期配置
    logging: LoggingConfig = Field(default_factory=LoggingConfig)  # 日志配置

    @property
    def auth_path(self) -> Path:
        """获取展开后的凭证目录绝对路径（将 ~ 展开为用户主目录）。"""
        return Path(self.bridge.auth_dir).expanduser()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """环境变量优先于传入的配置文件内容（按键深度合并）。"""
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    model_config = ConfigDict(
        env_prefix="WADEMO_",
        env_nested_delimiter="__"
    )
