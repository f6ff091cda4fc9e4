"""
环形时间窗口

N 个 1 秒时间桶按 `Unix 秒 mod N` 循环复用，记录最近 N 秒的更新次数和总耗时。
过期桶不做后台清扫：写入时发现过期就重置，读取时跳过过期桶。
"""

import math
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .config import get_config
from .errors import UninitializedRing
from .models import TimeBucket, as_utc, epoch_second, utc_now

DEFAULT_WINDOW_COUNT = 60


class WindowRing:
    """
    固定容量的时间桶环

    并发约定：
    - 每个桶自带锁，record() 的“判断过期 -> 重置或累加”在桶锁内完成
    - 不同桶之间互不阻塞
    - live_totals() 逐桶加锁读取，只保证单桶一致
    """

    def __init__(self, window_count: int = DEFAULT_WINDOW_COUNT, lazy_init: bool = True):
        """
        Args:
            window_count: 桶数量，同时也是窗口长度（秒）
            lazy_init: 未调用 initialize() 时，是否在首次 record/live_totals 时自动初始化；
                为 False 时抛出 UninitializedRing
        """
        if window_count < 1:
            raise ValueError("window_count must be positive")

        self.window_count = window_count
        self.window = timedelta(seconds=window_count)
        self.lazy_init = lazy_init

        self._buckets: Optional[List[TimeBucket]] = None
        self._init_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._buckets is not None

    def initialize(self, now: datetime):
        """
        创建（或重置）全部时间桶

        重复调用会把所有桶清零并把 window_start 设为 now，不会叠加。
        """
        now = as_utc(now)
        with self._init_lock:
            if self._buckets is None:
                self._buckets = [
                    TimeBucket(index=i, window_start=now)
                    for i in range(self.window_count)
                ]
                return

            for bucket in self._buckets:
                with bucket.lock:
                    bucket.window_start = now
                    bucket.sample_count = 0
                    bucket.total_latency = 0.0
                    bucket.period = None

    def _ensure_buckets(self, now: datetime) -> List[TimeBucket]:
        buckets = self._buckets
        if buckets is not None:
            return buckets

        if not self.lazy_init:
            raise UninitializedRing("WindowRing used before initialize()")

        with self._init_lock:
            if self._buckets is None:
                self._buckets = [
                    TimeBucket(index=i, window_start=now)
                    for i in range(self.window_count)
                ]
            return self._buckets

    def _is_expired(self, bucket: TimeBucket, now: datetime, second: int) -> bool:
        """
        桶当前数据是否已滚出窗口（调用方须持有桶锁）

        record() 与 live_totals() 共用此判断：
        1. 距 window_start 已满 N 秒
        2. 桶数据所属的整秒距当前整秒已满 N 秒（同一下标的不同周期不会混在一起）
        """
        if now - bucket.window_start >= self.window:
            return True
        return bucket.period is not None and second - bucket.period >= self.window_count

    def record(self, now: datetime, latency_ms: float):
        """
        记录一次更新耗时（热路径，不做 I/O，不记日志）

        Args:
            now: 样本时间
            latency_ms: 耗时（毫秒），负数及 inf/NaN 按 0 处理
        """
        now = as_utc(now)
        buckets = self._ensure_buckets(now)

        second = epoch_second(now)
        idx = second % self.window_count
        if idx >= len(buckets):
            return

        latency = float(latency_ms)
        if not math.isfinite(latency) or latency < 0:
            latency = 0.0
        bucket = buckets[idx]

        with bucket.lock:
            if bucket.period is not None and second < bucket.period:
                # 样本属于该下标已经滚过去的周期
                return

            if self._is_expired(bucket, now, second):
                bucket.window_start = now
                bucket.sample_count = 1
                bucket.total_latency = latency
                bucket.period = second
            else:
                bucket.sample_count += 1
                bucket.total_latency += latency
                if bucket.period is None:
                    bucket.period = second

    def live_totals(self, now: datetime) -> Tuple[int, float]:
        """
        汇总窗口内仍有效的桶

        Returns:
            (总更新次数, 总耗时 ms)
        """
        now = as_utc(now)
        buckets = self._ensure_buckets(now)
        second = epoch_second(now)

        total_count = 0
        total_latency = 0.0
        for bucket in buckets:
            with bucket.lock:
                if self._is_expired(bucket, now, second):
                    continue
                total_count += bucket.sample_count
                total_latency += bucket.total_latency

        return total_count, total_latency

    def buckets(self) -> List[TimeBucket]:
        """返回所有桶的副本（未初始化时为空列表）"""
        if self._buckets is None:
            return []
        return [bucket.copy() for bucket in self._buckets]


@contextmanager
def track_latency(ring: WindowRing, clock: Callable[[], datetime] = utc_now):
    """
    计时上下文：代码块结束后把耗时记入 ring

    使用方式：
        with track_latency(ring):
            apply_update()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        ring.record(clock(), elapsed_ms)


# 全局环实例（延迟加载）
_ring: Optional[WindowRing] = None


def get_ring() -> WindowRing:
    """获取全局 WindowRing 实例"""
    global _ring
    if _ring is None:
        config = get_config()
        _ring = WindowRing(
            window_count=config.window.count,
            lazy_init=config.window.lazy_init,
        )
    return _ring


def reset_ring():
    """重置全局实例（主要用于测试）"""
    global _ring
    _ring = None
