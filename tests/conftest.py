"""
公共测试夹具
"""

from datetime import datetime, timedelta, timezone

import pytest

from metrics_aggregator.aggregator import SnapshotAggregator, reset_aggregator
from metrics_aggregator.collectors.connections import reset_connection_tracker
from metrics_aggregator.collectors.cpu import reset_cpu_baseline
from metrics_aggregator.config import reset_config
from metrics_aggregator.database import MemorySnapshotStore, reset_store
from metrics_aggregator.window_ring import WindowRing, reset_ring

# 整分钟时刻：T0 的桶下标为 0
T0 = datetime(2026, 1, 20, 10, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """T0 之后 seconds 秒"""
    return T0 + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch, tmp_path):
    """每个用例使用默认配置和全新的全局实例"""
    monkeypatch.setenv("METRICS_AGGREGATOR_CONFIG", str(tmp_path / "missing-config.yaml"))
    reset_config()
    reset_ring()
    reset_store()
    reset_aggregator()
    reset_connection_tracker()
    reset_cpu_baseline()
    yield
    reset_config()
    reset_ring()
    reset_store()
    reset_aggregator()
    reset_connection_tracker()
    reset_cpu_baseline()


@pytest.fixture
def ring():
    """已在 T0 初始化的 60 桶环"""
    r = WindowRing()
    r.initialize(T0)
    return r


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def aggregator(ring, store):
    return SnapshotAggregator(ring, store, clock=lambda: at(1.0))
