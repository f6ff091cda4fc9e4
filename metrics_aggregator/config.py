"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。
"""

import os
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class WindowConfig(BaseModel):
    """时间窗口配置"""
    count: int = Field(default=60, ge=1, description="时间桶数量（每桶 1 秒）")
    lazy_init: bool = Field(default=True, description="未初始化时是否在首次使用时自动初始化")


class RetentionConfig(BaseModel):
    """快照保留策略"""
    seconds: int = Field(default=60, ge=1)


class TickerConfig(BaseModel):
    """快照生成周期"""
    interval: float = Field(default=1.0, gt=0)


class StoreConfig(BaseModel):
    """快照存储配置"""
    backend: Literal["memory", "sqlite"] = "memory"
    path: str = "data/metrics.db"
    timeout: int = 30


class APIConfig(BaseModel):
    """API 服务配置"""
    host: str = "0.0.0.0"
    port: int = 8090
    cors_origins: List[str] = ["http://localhost:8090", "http://127.0.0.1:8090"]


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None


class AppConfig(BaseModel):
    """应用配置（完整配置）"""
    window: WindowConfig = Field(default_factory=WindowConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    ticker: TickerConfig = Field(default_factory=TickerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 METRICS_AGGREGATOR_CONFIG
    3. 默认路径 config.yaml

    文件中的相对路径（store.path、logging.file）按配置文件所在目录解析。
    """
    if config_path is None:
        config_path = os.environ.get("METRICS_AGGREGATOR_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
        if raw_config:
            base_dir = config_file.resolve().parent

            def _resolve_path(value: Optional[str]) -> Optional[str]:
                if not value:
                    return value
                path = Path(value)
                if path.is_absolute():
                    return str(path)
                return str((base_dir / path).resolve())

            if isinstance(raw_config.get("store"), dict) and raw_config["store"].get("path"):
                raw_config["store"]["path"] = _resolve_path(raw_config["store"]["path"])
            if isinstance(raw_config.get("logging"), dict):
                raw_config["logging"]["file"] = _resolve_path(raw_config["logging"].get("file"))

            return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
