"""
快照存储层

以时间戳为主键保存 MetricsSnapshot，支持插入、按截止时间删除和全量扫描。
提供内存与 SQLite 两种实现，接口一致。
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import get_config
from .errors import DuplicateKey
from .models import MetricsSnapshot, epoch_micros, from_epoch_micros


class MemorySnapshotStore:
    """进程内快照存储（默认）"""

    def __init__(self):
        # {epoch_micros: MetricsSnapshot}
        self._snapshots: Dict[int, MetricsSnapshot] = {}
        self._lock = threading.Lock()

    def insert(self, snapshot: MetricsSnapshot):
        """
        插入快照

        Raises:
            DuplicateKey: 相同时间戳的快照已存在
        """
        key = epoch_micros(snapshot.timestamp)
        with self._lock:
            if key in self._snapshots:
                raise DuplicateKey(snapshot.timestamp)
            self._snapshots[key] = snapshot

    def delete_older_than(self, cutoff: datetime) -> int:
        """
        删除 timestamp < cutoff 的快照

        Returns:
            删除条数
        """
        cutoff_key = epoch_micros(cutoff)
        with self._lock:
            expired = [k for k in self._snapshots if k < cutoff_key]
            for key in expired:
                del self._snapshots[key]
            return len(expired)

    def all(self) -> List[MetricsSnapshot]:
        """全量扫描（按时间升序）"""
        with self._lock:
            return [self._snapshots[k] for k in sorted(self._snapshots)]

    def latest(self) -> Optional[MetricsSnapshot]:
        with self._lock:
            if not self._snapshots:
                return None
            return self._snapshots[max(self._snapshots)]

    def count(self) -> int:
        with self._lock:
            return len(self._snapshots)


class SqliteSnapshotStore:
    """SQLite 快照存储"""

    def __init__(self, db_path: Optional[str] = None, timeout: int = 30):
        """
        初始化数据库并建表

        Args:
            db_path: 数据库文件路径，不指定则从配置加载
            timeout: 连接等待锁的超时时间（秒）
        """
        if db_path is None:
            config = get_config()
            db_path = config.store.path
            timeout = config.store.timeout

        self.db_path = Path(db_path)
        self.timeout = timeout

        # 确保目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    @contextmanager
    def get_conn(self):
        """
        获取数据库连接（上下文管理器）

        使用方式：
            with store.get_conn() as conn:
                cursor = conn.execute("SELECT ...")
        """
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self):
        """建表（已存在则跳过）"""
        with self.get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS metrics_snapshots (
                    ts_us INTEGER PRIMARY KEY,
                    connected_clients INTEGER NOT NULL,
                    updates_per_second REAL NOT NULL,
                    average_update_time_ms REAL NOT NULL,
                    memory_usage_mb REAL NOT NULL,
                    cpu_usage_percent REAL NOT NULL
                )
            """)

    @staticmethod
    def _row_to_snapshot(row: sqlite3.Row) -> MetricsSnapshot:
        return MetricsSnapshot(
            timestamp=from_epoch_micros(row["ts_us"]),
            connected_clients=row["connected_clients"],
            updates_per_second=row["updates_per_second"],
            average_update_time_ms=row["average_update_time_ms"],
            memory_usage_mb=row["memory_usage_mb"],
            cpu_usage_percent=row["cpu_usage_percent"],
        )

    def insert(self, snapshot: MetricsSnapshot):
        """
        插入快照

        Raises:
            DuplicateKey: 相同时间戳的快照已存在
        """
        try:
            with self.get_conn() as conn:
                conn.execute("""
                    INSERT INTO metrics_snapshots (
                        ts_us, connected_clients, updates_per_second,
                        average_update_time_ms, memory_usage_mb, cpu_usage_percent
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    epoch_micros(snapshot.timestamp),
                    snapshot.connected_clients,
                    snapshot.updates_per_second,
                    snapshot.average_update_time_ms,
                    snapshot.memory_usage_mb,
                    snapshot.cpu_usage_percent,
                ))
        except sqlite3.IntegrityError as e:
            raise DuplicateKey(snapshot.timestamp) from e

    def delete_older_than(self, cutoff: datetime) -> int:
        """删除 timestamp < cutoff 的快照，返回删除条数"""
        with self.get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM metrics_snapshots WHERE ts_us < ?",
                (epoch_micros(cutoff),)
            )
            return cursor.rowcount

    def all(self) -> List[MetricsSnapshot]:
        """全量扫描（按时间升序）"""
        with self.get_conn() as conn:
            cursor = conn.execute("SELECT * FROM metrics_snapshots ORDER BY ts_us ASC")
            return [self._row_to_snapshot(row) for row in cursor.fetchall()]

    def latest(self) -> Optional[MetricsSnapshot]:
        with self.get_conn() as conn:
            cursor = conn.execute("SELECT * FROM metrics_snapshots ORDER BY ts_us DESC LIMIT 1")
            row = cursor.fetchone()
            return self._row_to_snapshot(row) if row else None

    def count(self) -> int:
        with self.get_conn() as conn:
            cursor = conn.execute("SELECT COUNT(*) AS n FROM metrics_snapshots")
            return cursor.fetchone()["n"]


# 全局存储实例（延迟加载）
_store = None


def get_store():
    """按配置获取全局快照存储实例"""
    global _store
    if _store is None:
        config = get_config()
        if config.store.backend == "sqlite":
            _store = SqliteSnapshotStore(config.store.path, timeout=config.store.timeout)
        else:
            _store = MemorySnapshotStore()
    return _store


def reset_store():
    """重置存储实例（主要用于测试）"""
    global _store
    _store = None
