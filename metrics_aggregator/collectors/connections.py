"""
连接数统计

宿主应用在客户端连接/断开时登记，聚合器在 tick 时读取当前连接数。
"""

import threading
from typing import Optional, Set


class ConnectionTracker:
    """线程安全的已连接客户端集合"""

    def __init__(self):
        self._clients: Set[str] = set()
        self._lock = threading.Lock()

    def connect(self, client_id: str) -> int:
        """登记客户端（重复登记不重复计数），返回当前连接数"""
        with self._lock:
            self._clients.add(client_id)
            return len(self._clients)

    def disconnect(self, client_id: str) -> int:
        """注销客户端（未登记的忽略），返回当前连接数"""
        with self._lock:
            self._clients.discard(client_id)
            return len(self._clients)

    def count(self) -> int:
        with self._lock:
            return len(self._clients)

    def clear(self):
        with self._lock:
            self._clients.clear()


# 全局连接统计实例
_tracker: Optional[ConnectionTracker] = None


def get_connection_tracker() -> ConnectionTracker:
    """获取全局 ConnectionTracker 实例"""
    global _tracker
    if _tracker is None:
        _tracker = ConnectionTracker()
    return _tracker


def reset_connection_tracker():
    """重置全局实例（主要用于测试）"""
    global _tracker
    _tracker = None
