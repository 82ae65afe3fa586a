"""配置加载模块。"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str) -> bool:
    try:
        return bool(int(os.getenv(name, "0") or "0"))
    except ValueError:
        return False


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Config:
    """应用配置。"""

    # 推特 App-only Bearer Token
    twitter_token: str
    # Discord Bot Token
    discord_token: str
    # 数据目录
    data_dir: pathlib.Path
    # 订阅文件
    subscriptions_file: pathlib.Path
    # 用户文件
    users_file: pathlib.Path
    # 重连延迟初始值与上限（毫秒）
    reconnect_start: int = 2000
    max_reconnect_delay: int = 240000
    # 不建立推文流
    disable_streams: bool = False
    # 链接展开
    unfurl_timeout: int = 10
    unfurl_workers: int = 8
    # 用户清理
    disable_sanity_check: bool = False
    users_batch_size: Optional[int] = None
    users_check_timeout: Optional[int] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, root: Optional[pathlib.Path] = None) -> "Config":
        """从环境变量加载配置。"""
        if root is None:
            root = pathlib.Path(__file__).resolve().parents[2]

        # 加载 .env 文件
        env_file = root / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        data_dir = root / "data" / "x_relay"

        return cls(
            twitter_token=os.getenv("TWITTER_BEARER_TOKEN", ""),
            discord_token=os.getenv("DISCORD_TOKEN", ""),
            data_dir=data_dir,
            subscriptions_file=data_dir / "subscriptions.json",
            users_file=data_dir / "users.json",
            reconnect_start=_env_int("TWITTER_RECONNECT_START", 2000),
            max_reconnect_delay=_env_int("TWITTER_MAX_RECONNECT_DELAY", 240000),
            disable_streams=_env_bool("DISABLE_STREAMS"),
            unfurl_timeout=_env_int("UNFURL_TIMEOUT", 10),
            unfurl_workers=_env_int("UNFURL_WORKERS", 8),
            disable_sanity_check=_env_bool("DISABLE_SANITY_CHECK"),
            users_batch_size=_env_int("USERS_BATCH_SIZE", None),
            users_check_timeout=_env_int("USERS_CHECK_TIMEOUT", None),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def ensure_dirs(self) -> None:
        """确保目录存在。"""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def validate(self) -> list[str]:
        """验证配置，返回错误列表。"""
        errors = []
        if not self.twitter_token:
            errors.append("未配置 TWITTER_BEARER_TOKEN")
        if not self.discord_token:
            errors.append("未配置 DISCORD_TOKEN")
        if self.max_reconnect_delay < self.reconnect_start:
            errors.append("TWITTER_MAX_RECONNECT_DELAY 小于 TWITTER_RECONNECT_START")
        return errors
