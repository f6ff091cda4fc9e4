"""
快照聚合任务

每秒触发一次：汇总环形窗口 -> 计算吞吐/平均耗时 -> 合并连接数与主机资源
-> 写入快照 -> 清理超过保留期的快照。
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

from .collectors import get_connection_tracker, read_host_resources
from .config import get_config
from .database import get_store
from .errors import DuplicateKey
from .models import MetricsSnapshot, ResourceReading, as_utc, utc_now
from .window_ring import WindowRing, get_ring

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 60


def _clamp(value, cast):
    """负数及 inf/NaN 按 0 处理"""
    if not math.isfinite(value) or value < 0:
        return cast(0)
    return cast(value)


class SnapshotAggregator:
    """
    快照聚合器

    ring 与 store 由调用方注入；时钟、连接数、主机资源均以可调用对象注入，
    便于测试中使用固定时钟和模拟读数。
    """

    def __init__(
        self,
        ring: WindowRing,
        store,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        connections_provider: Optional[Callable[[], int]] = None,
        resource_provider: Optional[Callable[[], ResourceReading]] = None,
    ):
        self.ring = ring
        self.store = store
        self.retention = timedelta(seconds=retention_seconds)
        self.clock = clock
        self.connections_provider = connections_provider
        self.resource_provider = resource_provider

        # 采集失败时沿用的上一次读数
        self._last_connected_clients = 0
        self._last_memory_usage_mb = 0.0
        self._last_cpu_usage_percent = 0.0

    def tick(
        self,
        now: datetime,
        connected_clients: Optional[int],
        memory_usage_mb: Optional[float],
        cpu_usage_percent: Optional[float],
    ) -> MetricsSnapshot:
        """
        生成一条快照并清理过期快照

        Args:
            now: 本次 tick 时间，同时作为快照主键
            connected_clients: 当前连接数，None 表示不可用
            memory_usage_mb: 已用内存 MB，None 表示不可用
            cpu_usage_percent: CPU 使用率，None 表示不可用

        Returns:
            新写入的快照

        Raises:
            DuplicateKey: now 与已有快照时间戳冲突（过期清理仍会执行，
                沿用值不更新）
        """
        now = as_utc(now)

        total_updates, total_time = self.ring.live_totals(now)
        updates_per_second = total_updates / self.ring.window_count
        average_update_time = total_time / total_updates if total_updates > 0 else 0.0

        # 不可用的读数沿用上一次的值（初始为 0）
        if connected_clients is None:
            connected_clients = self._last_connected_clients
        if memory_usage_mb is None:
            memory_usage_mb = self._last_memory_usage_mb
        if cpu_usage_percent is None:
            cpu_usage_percent = self._last_cpu_usage_percent

        snapshot = MetricsSnapshot(
            timestamp=now,
            connected_clients=_clamp(connected_clients, int),
            updates_per_second=updates_per_second,
            average_update_time_ms=_clamp(average_update_time, float),
            memory_usage_mb=_clamp(memory_usage_mb, float),
            cpu_usage_percent=_clamp(cpu_usage_percent, float),
        )

        try:
            self.store.insert(snapshot)
        finally:
            removed = self.store.delete_older_than(now - self.retention)
            if removed:
                logger.debug(f"Pruned {removed} expired snapshots")

        # 写入成功后才更新沿用值
        self._last_connected_clients = snapshot.connected_clients
        self._last_memory_usage_mb = snapshot.memory_usage_mb
        self._last_cpu_usage_percent = snapshot.cpu_usage_percent

        return snapshot

    def _read_connections(self) -> Optional[int]:
        if self.connections_provider is None:
            return None
        try:
            return self.connections_provider()
        except Exception as e:
            logger.warning(f"Connection provider unavailable: {e}")
            return None

    def _read_resources(self) -> ResourceReading:
        if self.resource_provider is None:
            return ResourceReading()
        try:
            reading = self.resource_provider()
        except Exception as e:
            logger.warning(f"Resource provider unavailable: {e}")
            return ResourceReading()
        return reading if reading is not None else ResourceReading()

    def tick_from_providers(self, now: Optional[datetime] = None) -> MetricsSnapshot:
        """
        从注入的时钟和采集器读取输入后执行 tick

        采集器异常不会向上传播，按不可用处理。
        """
        if now is None:
            now = self.clock()

        reading = self._read_resources()
        return self.tick(
            now,
            connected_clients=self._read_connections(),
            memory_usage_mb=reading.memory_usage_mb,
            cpu_usage_percent=reading.cpu_usage_percent,
        )

    def latest(self) -> Optional[MetricsSnapshot]:
        """最近一条快照"""
        return self.store.latest()


# 全局聚合器实例（延迟加载）
_aggregator: Optional[SnapshotAggregator] = None


def get_aggregator() -> SnapshotAggregator:
    """获取全局 SnapshotAggregator 实例（使用全局 ring/store/采集器）"""
    global _aggregator
    if _aggregator is None:
        config = get_config()
        _aggregator = SnapshotAggregator(
            ring=get_ring(),
            store=get_store(),
            retention_seconds=config.retention.seconds,
            connections_provider=get_connection_tracker().count,
            resource_provider=read_host_resources,
        )
    return _aggregator


def reset_aggregator():
    """重置全局实例（主要用于测试）"""
    global _aggregator
    _aggregator = None


async def run_ticker(aggregator: Optional[SnapshotAggregator] = None):
    """
    运行快照生成循环

    每隔 ticker.interval 秒执行一次 tick_from_providers。
    """
    config = get_config()
    interval = config.ticker.interval
    if aggregator is None:
        aggregator = get_aggregator()

    logger.info(
        f"Starting ticker loop (interval={interval}s, "
        f"window={aggregator.ring.window_count}s, retention={aggregator.retention.total_seconds():.0f}s)"
    )

    while True:
        try:
            snapshot = aggregator.tick_from_providers()
            logger.debug(
                f"Snapshot {snapshot.timestamp.isoformat()}: "
                f"ups={snapshot.updates_per_second:.3f} avg={snapshot.average_update_time_ms:.2f}ms "
                f"clients={snapshot.connected_clients}"
            )
        except asyncio.CancelledError:
            logger.info("Ticker task cancelled")
            raise
        except DuplicateKey as e:
            logger.warning(f"Skipped snapshot: {e}")
        except Exception as e:
            logger.error(f"Ticker error: {e}", exc_info=True)

        await asyncio.sleep(interval)
