"""
健康检查 API
"""

from fastapi import APIRouter, Depends

from ...aggregator import SnapshotAggregator
from ...config import AppConfig
from ...models import HealthResponse, utc_now
from ..dependencies import get_app_config, get_snapshot_aggregator

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def get_health(
    aggregator: SnapshotAggregator = Depends(get_snapshot_aggregator),
    config: AppConfig = Depends(get_app_config),
):
    """
    健康检查端点

    检查环形窗口是否已初始化、快照是否按时生成。
    """
    now = utc_now()
    checks = {}
    details = {}
    overall_status = "ok"

    # 环形窗口
    if aggregator.ring.initialized:
        checks["window"] = "ok"
        details["window"] = None
    else:
        checks["window"] = "degraded"
        details["window"] = "WindowRing not initialized"
        overall_status = "degraded"

    # 快照生成：最新快照不应落后超过 3 个周期
    try:
        latest = aggregator.latest()
        if latest is None:
            checks["ticker"] = "degraded"
            details["ticker"] = "No snapshot available yet"
            overall_status = "degraded"
        else:
            lag = (now - latest.timestamp).total_seconds()
            if lag > config.ticker.interval * 3:
                checks["ticker"] = "degraded"
                details["ticker"] = f"Latest snapshot is {lag:.1f}s old"
                overall_status = "degraded"
            else:
                checks["ticker"] = "ok"
                details["ticker"] = None
    except Exception as e:
        checks["ticker"] = "error"
        details["ticker"] = str(e)
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=now,
        checks=checks,
        details=details
    )
