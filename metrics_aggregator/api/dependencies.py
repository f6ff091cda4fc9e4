"""
依赖注入模块

提供 FastAPI 依赖项。
"""

from ..aggregator import SnapshotAggregator, get_aggregator
from ..collectors import ConnectionTracker, get_connection_tracker
from ..config import AppConfig, get_config
from ..window_ring import WindowRing, get_ring


async def get_app_config() -> AppConfig:
    """获取配置实例"""
    return get_config()


async def get_window_ring() -> WindowRing:
    """获取环形窗口实例"""
    return get_ring()


async def get_snapshot_aggregator() -> SnapshotAggregator:
    """获取快照聚合器实例"""
    return get_aggregator()


async def get_tracker() -> ConnectionTracker:
    """获取连接数统计实例"""
    return get_connection_tracker()
