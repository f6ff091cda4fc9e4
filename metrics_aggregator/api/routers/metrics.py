"""
指标 API

提供保留窗口内的快照读取和耗时样本上报。
"""

from fastapi import APIRouter, Depends, HTTPException, status

from ...aggregator import SnapshotAggregator
from ...config import AppConfig
from ...errors import UninitializedRing
from ...models import (
    MetricsListResponse,
    MetricsSnapshot,
    SampleAccepted,
    SampleRequest,
    as_utc,
)
from ...window_ring import WindowRing
from ..dependencies import get_app_config, get_snapshot_aggregator, get_window_ring

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics", response_model=MetricsListResponse)
async def list_metrics(
    aggregator: SnapshotAggregator = Depends(get_snapshot_aggregator),
    config: AppConfig = Depends(get_app_config),
):
    """
    获取快照日志

    返回保留窗口内的全部快照，按时间升序排列。
    """
    snapshots = aggregator.store.all()
    return MetricsListResponse(
        retention_seconds=config.retention.seconds,
        count=len(snapshots),
        data=snapshots,
    )


@router.get("/metrics/latest", response_model=MetricsSnapshot)
async def latest_metrics(aggregator: SnapshotAggregator = Depends(get_snapshot_aggregator)):
    """获取最新快照"""
    snapshot = aggregator.latest()
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No snapshot available yet"
        )
    return snapshot


@router.post("/samples", response_model=SampleAccepted, status_code=status.HTTP_202_ACCEPTED)
async def record_sample(
    sample: SampleRequest,
    ring: WindowRing = Depends(get_window_ring),
    aggregator: SnapshotAggregator = Depends(get_snapshot_aggregator),
):
    """
    上报一次更新耗时

    未指定 timestamp 时使用服务端时钟。
    """
    ts = as_utc(sample.timestamp) if sample.timestamp is not None else aggregator.clock()
    try:
        ring.record(ts, sample.latency_ms)
    except UninitializedRing as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return SampleAccepted(timestamp=ts)
