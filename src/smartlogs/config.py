"""
SmartLogs 配置模块

优先级：显式参数 > 环境变量 > 配置文件 > 默认值
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from loguru import logger

from smartlogs.domain.errors import ConfigurationError

DEFAULT_ORIGIN = "client"
DEFAULT_SERVER_URL = "ws://localhost:5175"

_ENV_LOADED = False


def _load_env_file() -> None:
    """加载当前目录下的 .env（仅一次，已有环境变量优先）"""
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    _ENV_LOADED = True

    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _get_env_value(*keys: str) -> str | None:
    """按优先顺序读取环境变量"""
    for key in keys:
        value = os.getenv(key)
        if value is not None and value != "":
            return value
    return None


def _get_env_int(*keys: str) -> int | None:
    value = _get_env_value(*keys)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _get_env_float(*keys: str) -> float | None:
    value = _get_env_value(*keys)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _get_env_bool(*keys: str) -> bool | None:
    value = _get_env_value(*keys)
    if value is None:
        return None
    return value.lower() in ("1", "true", "yes", "on")


def _load_env_config() -> dict[str, Any]:
    """读取环境变量配置"""
    _load_env_file()
    env_config: dict[str, Any] = {}

    origin = _get_env_value("LOGS_ORIGIN")
    if origin:
        env_config["origin"] = origin

    server_url = _get_env_value("LOGS_SERVER_URL")
    if server_url:
        env_config["server_url"] = server_url

    enabled = _get_env_bool("LOGS_ENABLED")
    if enabled is not None:
        env_config["enabled"] = enabled

    heartbeat_interval = _get_env_float("LOGS_HEARTBEAT_INTERVAL")
    if heartbeat_interval is not None:
        env_config["heartbeat_interval"] = heartbeat_interval

    disconnect_grace = _get_env_float("LOGS_DISCONNECT_GRACE")
    if disconnect_grace is not None:
        env_config["disconnect_grace"] = disconnect_grace

    open_timeout = _get_env_float("LOGS_OPEN_TIMEOUT")
    if open_timeout is not None:
        env_config["open_timeout"] = open_timeout

    max_send_attempts = _get_env_int("LOGS_MAX_SEND_ATTEMPTS")
    if max_send_attempts is not None:
        env_config["max_send_attempts"] = max_send_attempts

    log_level = _get_env_value("LOGS_LOG_LEVEL")
    if log_level:
        env_config["log_level"] = log_level.upper()

    return env_config


@dataclass
class LogsConfig:
    """SmartLogs 客户端配置"""

    # 来源标识与采集端地址
    origin: str = DEFAULT_ORIGIN
    server_url: str = DEFAULT_SERVER_URL
    enabled: bool = True

    # 连接生命周期
    heartbeat_interval: float = 20.0
    disconnect_grace: float = 2.0
    send_delay: float = 0.001
    open_timeout: float = 10.0
    ping_interval: float = 20.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    max_send_attempts: int = 0

    log_level: str = "INFO"

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_env(cls, base: "LogsConfig | None" = None, **overrides: Any) -> "LogsConfig":
        """
        合并环境变量与显式参数

        空字符串和 None 的显式参数视为未设置。
        """
        data = (base or cls()).to_dict()
        data.update(_load_env_config())
        data.update({k: v for k, v in overrides.items() if v is not None and v != ""})
        return cls._from_mapping(data)

    @classmethod
    def _from_mapping(cls, data: dict[str, Any]) -> "LogsConfig":
        known = cls.field_names()
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"忽略未知配置项: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def resolve_endpoint(self) -> str | None:
        """
        解析采集端地址

        Returns:
            ws:// 或 wss:// 地址；禁用时返回 None

        Raises:
            ConfigurationError: 地址不合法
        """
        if not self.enabled:
            return None

        url = (self.server_url or "").strip()
        if not url:
            return None

        parsed = urlparse(url)
        if parsed.scheme not in ("ws", "wss"):
            raise ConfigurationError(
                f"采集端地址必须使用 ws:// 或 wss://: {url}",
                config_key="server_url",
            )
        if not parsed.hostname:
            raise ConfigurationError(f"采集端地址缺少主机名: {url}", config_key="server_url")

        return url

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "origin": self.origin,
            "server_url": self.server_url,
            "enabled": self.enabled,
            "heartbeat_interval": self.heartbeat_interval,
            "disconnect_grace": self.disconnect_grace,
            "send_delay": self.send_delay,
            "open_timeout": self.open_timeout,
            "ping_interval": self.ping_interval,
            "reconnect_base_delay": self.reconnect_base_delay,
            "reconnect_max_delay": self.reconnect_max_delay,
            "max_send_attempts": self.max_send_attempts,
            "log_level": self.log_level,
        }

    def save_to_file(self, path: Path) -> None:
        """保存配置到 YAML 文件"""
        path = Path(path)
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)

    @classmethod
    def load_from_file(cls, path: Path) -> "LogsConfig":
        """从 YAML 文件加载配置，文件不存在或损坏时返回默认配置"""
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("加载配置文件失败: {}", e)
            return cls()

        if not isinstance(config_data, dict):
            logger.warning("配置文件格式错误: {}", path)
            return cls()

        return cls._from_mapping(config_data)

