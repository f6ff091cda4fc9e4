"""
数据模型定义

包括：
- 时间工具（统一使用 UTC aware datetime）
- 时间桶 TimeBucket（环形窗口的工作状态）
- 指标快照 MetricsSnapshot（对外输出的不可变记录）
- Pydantic 请求/响应模型
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# 时间工具
# =============================================================================

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """默认时钟"""
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """naive datetime 视为 UTC"""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def epoch_second(ts: datetime) -> int:
    """返回 ts 所在的整秒（向下取整的 Unix 秒）"""
    delta = as_utc(ts) - EPOCH
    return delta.days * 86400 + delta.seconds


def epoch_micros(ts: datetime) -> int:
    """返回 ts 的 Unix 微秒数（快照主键使用）"""
    delta = as_utc(ts) - EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_epoch_micros(micros: int) -> datetime:
    """epoch_micros 的逆运算"""
    return EPOCH + timedelta(microseconds=micros)


# =============================================================================
# 环形窗口工作状态
# =============================================================================

@dataclass
class TimeBucket:
    """
    单个时间桶

    index 固定不变；window_start/period/sample_count/total_latency 在锁内原地修改。
    period 为该桶当前数据所属的 Unix 整秒，初始化后尚未写入样本时为 None。
    """
    index: int
    window_start: datetime
    sample_count: int = 0
    total_latency: float = 0.0
    period: Optional[int] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def copy(self) -> "TimeBucket":
        """返回不带锁共享的一致副本"""
        with self.lock:
            return TimeBucket(
                index=self.index,
                window_start=self.window_start,
                sample_count=self.sample_count,
                total_latency=self.total_latency,
                period=self.period,
            )


@dataclass
class ResourceReading:
    """主机资源读数（任一字段为 None 表示本次采集失败）"""
    memory_usage_mb: Optional[float] = None
    cpu_usage_percent: Optional[float] = None


# =============================================================================
# 快照与 API 模型
# =============================================================================

class MetricsSnapshot(BaseModel):
    """指标快照（每次 tick 生成一条，生成后不可修改）"""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    connected_clients: int = Field(0, ge=0, description="当前连接数")
    updates_per_second: float = Field(0.0, ge=0, description="窗口内平均每秒更新次数")
    average_update_time_ms: float = Field(0.0, ge=0, description="窗口内平均单次更新耗时 (ms)")
    memory_usage_mb: float = Field(0.0, ge=0, description="已用内存 (MB)")
    cpu_usage_percent: float = Field(0.0, ge=0, description="CPU 使用率（可能略超 100）")


class SampleRequest(BaseModel):
    """POST /api/samples 请求"""
    latency_ms: float = Field(..., ge=0, allow_inf_nan=False, description="单次更新耗时 (ms)")
    timestamp: Optional[datetime] = Field(None, description="样本时间，缺省为服务端当前时间")


class SampleAccepted(BaseModel):
    """POST /api/samples 响应"""
    accepted: bool = True
    timestamp: datetime


class ClientsResponse(BaseModel):
    """连接登记/注销响应"""
    client_id: str
    connected_clients: int


class MetricsListResponse(BaseModel):
    """GET /api/metrics 响应"""
    retention_seconds: int
    count: int
    data: List[MetricsSnapshot] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str = Field(..., description="健康状态: ok|degraded")
    timestamp: datetime
    checks: Dict[str, str]
    details: Dict[str, Optional[str]]
