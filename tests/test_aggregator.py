"""
单元测试：快照聚合

测试覆盖：
- 吞吐 / 平均耗时计算（含零样本边界）
- 保留期清理
- 时间戳冲突
- 采集器不可用时的降级
- 输入钳制
"""

import asyncio

import pytest

from conftest import T0, at
from metrics_aggregator.aggregator import SnapshotAggregator, get_aggregator, run_ticker
from metrics_aggregator.config import get_config
from metrics_aggregator.database import SqliteSnapshotStore
from metrics_aggregator.errors import DuplicateKey, ProviderUnavailable
from metrics_aggregator.models import ResourceReading
from metrics_aggregator.window_ring import WindowRing


class TestTick:
    """tick() 计算"""

    def test_end_to_end_example(self, ring, store, aggregator):
        """测试：两次样本 10ms/20ms 后 tick"""
        ring.record(at(0.1), 10.0)
        ring.record(at(0.2), 20.0)

        snapshot = aggregator.tick(at(1.0), 5, 100.0, 12.5)

        assert snapshot.timestamp == at(1.0)
        assert snapshot.updates_per_second == pytest.approx(2 / 60)
        assert snapshot.updates_per_second == pytest.approx(0.0333, abs=1e-4)
        assert snapshot.average_update_time_ms == 15.0
        assert snapshot.connected_clients == 5
        assert snapshot.memory_usage_mb == 100.0
        assert snapshot.cpu_usage_percent == 12.5
        assert store.all() == [snapshot]

    def test_idle_window_gives_zero(self, ring, aggregator):
        """测试：70 秒无样本后吞吐和平均耗时都为 0"""
        snapshot = aggregator.tick(at(70), 0, 0.0, 0.0)

        assert snapshot.updates_per_second == 0
        assert snapshot.average_update_time_ms == 0.0

    def test_no_samples_average_is_exactly_zero(self, aggregator):
        snapshot = aggregator.tick(at(1), 1, 1.0, 1.0)
        assert snapshot.average_update_time_ms == 0.0

    def test_rate_uses_full_window(self, ring, aggregator):
        """测试：吞吐按整个 60 秒窗口平均"""
        for second in range(30):
            ring.record(at(second + 0.5), 1.0)
            ring.record(at(second + 0.6), 3.0)

        snapshot = aggregator.tick(at(30), 0, 0.0, 0.0)

        assert snapshot.updates_per_second == pytest.approx(60 / 60)
        assert snapshot.average_update_time_ms == pytest.approx(2.0)

    def test_snapshot_is_immutable(self, aggregator):
        snapshot = aggregator.tick(at(1), 1, 1.0, 1.0)
        with pytest.raises(Exception):
            snapshot.connected_clients = 10

    def test_negative_inputs_clamped(self, aggregator):
        """测试：负输入按 0 处理"""
        snapshot = aggregator.tick(at(1), -3, -1.0, -0.5)

        assert snapshot.connected_clients == 0
        assert snapshot.memory_usage_mb == 0.0
        assert snapshot.cpu_usage_percent == 0.0

    def test_non_finite_inputs_treated_as_zero(self, ring, aggregator):
        """测试：inf/NaN 读数按 0 处理，快照字段始终为有限非负数"""
        ring.record(at(0.5), float("inf"))

        snapshot = aggregator.tick(at(1), 2, float("inf"), float("nan"))

        assert snapshot.memory_usage_mb == 0.0
        assert snapshot.cpu_usage_percent == 0.0
        assert snapshot.average_update_time_ms == 0.0
        assert snapshot.connected_clients == 2

    def test_cpu_above_hundred_kept(self, aggregator):
        """测试：多核口径下略超 100 的 CPU 读数原样保留"""
        snapshot = aggregator.tick(at(1), 0, 1.0, 103.5)
        assert snapshot.cpu_usage_percent == 103.5


class TestRetention:
    """保留期清理"""

    def test_no_snapshot_older_than_retention(self, aggregator, store):
        """测试：每次 tick 后不存在早于 now-60s 的快照"""
        for second in range(0, 131):
            now = at(second)
            aggregator.tick(now, 0, 0.0, 0.0)

            cutoff = at(second - 60)
            assert all(s.timestamp >= cutoff for s in store.all())

        # [70, 130] 共 61 条
        assert store.count() == 61
        assert store.all()[0].timestamp == at(70)

    def test_boundary_snapshot_kept(self, aggregator, store):
        """测试：恰好 now-60s 的快照保留"""
        aggregator.tick(at(0), 0, 0.0, 0.0)
        aggregator.tick(at(60), 0, 0.0, 0.0)
        assert store.count() == 2

        aggregator.tick(at(60.000001), 0, 0.0, 0.0)
        assert [s.timestamp for s in store.all()] == [at(60), at(60.000001)]

    def test_custom_retention(self, ring, store):
        agg = SnapshotAggregator(ring, store, retention_seconds=5)
        for second in range(10):
            agg.tick(at(second), 0, 0.0, 0.0)

        assert [s.timestamp for s in store.all()] == [at(s) for s in range(4, 10)]


class TestDuplicateKey:
    """时间戳冲突"""

    def test_same_timestamp_raises(self, ring, aggregator, store):
        """测试：相同时间戳第二次 tick 报 DuplicateKey，不覆盖原快照"""
        ring.record(at(0.5), 10.0)
        first = aggregator.tick(at(1), 1, 1.0, 1.0)

        ring.record(at(0.6), 30.0)
        with pytest.raises(DuplicateKey):
            aggregator.tick(at(1), 2, 2.0, 2.0)

        assert store.all() == [first]
        # 环形窗口不受影响
        assert ring.live_totals(at(1)) == (2, pytest.approx(40.0))

    def test_duplicate_still_prunes(self, aggregator, store):
        """测试：冲突时仍执行过期清理"""
        first = aggregator.tick(at(0), 0, 0.0, 0.0)
        store.insert(first.model_copy(update={"timestamp": at(100)}))

        with pytest.raises(DuplicateKey):
            aggregator.tick(at(100), 0, 0.0, 0.0)

        assert [s.timestamp for s in store.all()] == [at(100)]

    def test_duplicate_keeps_previous_fallback_values(self, aggregator):
        """测试：冲突的 tick 不改变后续降级时沿用的读数"""
        aggregator.tick(at(1), 3, 100.0, 10.0)

        with pytest.raises(DuplicateKey):
            aggregator.tick(at(1), 9, 900.0, 90.0)

        snapshot = aggregator.tick(at(2), None, None, None)
        assert snapshot.connected_clients == 3
        assert snapshot.memory_usage_mb == 100.0
        assert snapshot.cpu_usage_percent == 10.0

    def test_sqlite_store_duplicate(self, ring, tmp_path):
        store = SqliteSnapshotStore(str(tmp_path / "metrics.db"))
        agg = SnapshotAggregator(ring, store)
        agg.tick(at(1), 1, 1.0, 1.0)

        with pytest.raises(DuplicateKey):
            agg.tick(at(1), 1, 1.0, 1.0)
        assert store.count() == 1


class TestProviderFallback:
    """采集器不可用时的降级"""

    def test_unavailable_before_any_reading_uses_zero(self, aggregator):
        snapshot = aggregator.tick(at(1), None, None, None)

        assert snapshot.connected_clients == 0
        assert snapshot.memory_usage_mb == 0.0
        assert snapshot.cpu_usage_percent == 0.0

    def test_unavailable_uses_last_known(self, aggregator):
        """测试：不可用时沿用上一次读数"""
        aggregator.tick(at(1), 7, 512.0, 40.0)
        snapshot = aggregator.tick(at(2), None, None, 55.0)

        assert snapshot.connected_clients == 7
        assert snapshot.memory_usage_mb == 512.0
        assert snapshot.cpu_usage_percent == 55.0

    def test_tick_from_providers(self, ring, store):
        """测试：从注入的采集器读取输入"""
        ring.record(at(0.5), 8.0)
        agg = SnapshotAggregator(
            ring,
            store,
            clock=lambda: at(1),
            connections_provider=lambda: 3,
            resource_provider=lambda: ResourceReading(memory_usage_mb=256.0, cpu_usage_percent=20.0),
        )

        snapshot = agg.tick_from_providers()

        assert snapshot.timestamp == at(1)
        assert snapshot.connected_clients == 3
        assert snapshot.memory_usage_mb == 256.0
        assert snapshot.cpu_usage_percent == 20.0
        assert snapshot.average_update_time_ms == 8.0

    def test_failing_providers_do_not_propagate(self, ring, store):
        """测试：采集器抛异常时仍生成快照"""
        def broken_connections():
            raise RuntimeError("no connection registry")

        def broken_resources():
            raise ProviderUnavailable("psutil failed")

        agg = SnapshotAggregator(
            ring,
            store,
            clock=lambda: at(1),
            connections_provider=broken_connections,
            resource_provider=broken_resources,
        )
        agg.tick(at(0.5), 4, 64.0, 10.0)

        snapshot = agg.tick_from_providers()

        assert store.count() == 2
        assert snapshot.connected_clients == 4
        assert snapshot.memory_usage_mb == 64.0
        assert snapshot.cpu_usage_percent == 10.0

    def test_no_providers_configured(self, ring, store):
        agg = SnapshotAggregator(ring, store, clock=lambda: at(1))
        snapshot = agg.tick_from_providers()

        assert snapshot.connected_clients == 0
        assert snapshot.memory_usage_mb == 0.0

    def test_provider_returning_none(self, ring, store):
        agg = SnapshotAggregator(ring, store, resource_provider=lambda: None)
        snapshot = agg.tick_from_providers(at(1))
        assert snapshot.memory_usage_mb == 0.0


class TestUninitialized:
    def test_lazy_ring_initializes_on_tick(self, store):
        ring = WindowRing()
        agg = SnapshotAggregator(ring, store)

        snapshot = agg.tick(T0, 0, 0.0, 0.0)

        assert ring.initialized
        assert snapshot.updates_per_second == 0


def test_latest(aggregator):
    assert aggregator.latest() is None
    aggregator.tick(at(1), 0, 0.0, 0.0)
    second = aggregator.tick(at(2), 0, 0.0, 0.0)
    assert aggregator.latest() == second


def test_global_aggregator_wiring():
    agg = get_aggregator()
    assert agg.ring.window_count == 60
    assert agg.retention.total_seconds() == 60
    assert agg.connections_provider is not None
    assert get_aggregator() is agg


def test_run_ticker_keeps_running_after_errors(ring, store, monkeypatch):
    """测试：tick 出错不会终止循环"""
    calls = {"n": 0}
    agg = SnapshotAggregator(ring, store)

    def flaky(now=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("transient")
        if calls["n"] == 2:
            raise DuplicateKey(T0)
        raise asyncio.CancelledError()

    get_config().ticker.interval = 0.001
    monkeypatch.setattr(agg, "tick_from_providers", flaky)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(run_ticker(agg))

    assert calls["n"] == 3
