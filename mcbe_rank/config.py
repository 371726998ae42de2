"""
配置加载模块

把 config.yaml 加载为 pydantic 模型。文件中未提供的值可以通过
MCBE_RANK_* 环境变量设置。
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataFiles(BaseModel):
    """采集器读写的所有路径"""
    addresses: str = "data/addresses.json"
    servers_dir: str = "data/servers"
    statistics_dir: str = "data/statistics"
    online_servers: str = "data/online_servers.json"
    offline_servers: str = "data/offline_servers.json"
    plugins: str = "data/plugins.json"
    total: str = "data/total.json"
    total_statistics: str = "data/statistics/total.csv"
    lock: str = "data/mcbe-rank.lock"

    @classmethod
    def under(cls, root) -> "DataFiles":
        """在另一个根目录下构建默认布局"""
        root = Path(root)
        return cls(
            addresses=str(root / "addresses.json"),
            servers_dir=str(root / "servers"),
            statistics_dir=str(root / "statistics"),
            online_servers=str(root / "online_servers.json"),
            offline_servers=str(root / "offline_servers.json"),
            plugins=str(root / "plugins.json"),
            total=str(root / "total.json"),
            total_statistics=str(root / "statistics" / "total.csv"),
            lock=str(root / "mcbe-rank.lock"),
        )


class ProbeConfig(BaseModel):
    """探测配置"""
    ping_attempts: int = Field(default=3, ge=1)
    query_attempts: int = Field(default=2, ge=1)
    timeout_ms: int = Field(default=2000, gt=0)
    resolve_timeout: float = Field(default=5.0, gt=0)


class ScheduleConfig(BaseModel):
    """采集周期配置"""
    interval: int = Field(default=60, gt=0)
    align: bool = True


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseSettings):
    """完整应用配置"""
    model_config = SettingsConfigDict(env_prefix="MCBE_RANK_", env_nested_delimiter="__")

    files: DataFiles = Field(default_factory=DataFiles)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    查找顺序：
    1. 参数指定的路径
    2. 环境变量 MCBE_RANK_CONFIG_PATH
    3. 工作目录下的 config.yaml

    文件中的相对路径相对于配置文件所在目录解析。文件不存在时返回默认配置。
    """
    if config_path is None:
        config_path = os.environ.get("MCBE_RANK_CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if not config_file.exists():
        return AppConfig()

    with open(config_file, "r", encoding="utf-8") as f:
        raw_config = yaml.safe_load(f) or {}

    base_dir = config_file.resolve().parent

    def _resolve_path(value: Optional[str]) -> Optional[str]:
        if not value:
            return value
        path = Path(value)
        if path.is_absolute():
            return str(path)
        return str((base_dir / path).resolve())

    files = raw_config.setdefault("files", {}) or {}
    # 未设置的项使用默认值，但同样相对于配置文件所在目录
    defaults = DataFiles().model_dump()
    raw_config["files"] = {
        key: _resolve_path(files.get(key, default))
        for key, default in defaults.items()
    }

    log_config = raw_config.get("logging") or {}
    if log_config.get("file"):
        log_config["file"] = _resolve_path(log_config["file"])
        raw_config["logging"] = log_config

    return AppConfig(**raw_config)


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """清除全局配置（主要用于测试）"""
    global _config
    _config = None
