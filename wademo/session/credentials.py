"""
凭证存储 - 保存登录凭证，避免每次启动都重新扫码或配对。

凭证是桥接服务产生的不透明 JSON 对象，Python 端只读取其中的
registered 字段判断是否需要配对，其余内容原样保存。

- CredentialStore：凭证存储的抽象接口（load / save）
- FileCredentialStore：基于单个 JSON 文件的实现（<auth_dir>/creds.json）
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from loguru import logger

from wademo.utils.helpers import ensure_dir


class CredentialStore(ABC):
    """凭证存储接口。"""

    @abstractmethod
    async def load(self) -> dict[str, Any]:
        """读取已保存的凭证，没有时返回空字典。"""
        pass

    @abstractmethod
    async def save(self, creds: dict[str, Any]) -> None:
        """保存完整凭证。返回时写入必须已经完成。"""
        pass


class FileCredentialStore(CredentialStore):
    """
    文件凭证存储。

    写入时先写临时文件再原子替换，进程在写入途中退出不会留下半截文件。
    登出后需要手动删除 auth_dir 才能重新配对。
    """

    def __init__(self, auth_dir: Path):
        self.auth_dir = auth_dir
        self.creds_file = auth_dir / "creds.json"

    async def load(self) -> dict[str, Any]:
        if not self.creds_file.exists():
            logger.info(f"No saved credentials at {self.creds_file}, a new login is required")
            return {}
        with open(self.creds_file, encoding="utf-8") as f:
            return json.load(f)

    async def save(self, creds: dict[str, Any]) -> None:
        ensure_dir(self.auth_dir)
        tmp_path = self.creds_file.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(creds, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.creds_file)
        logger.debug(f"Saved credentials to {self.creds_file}")
