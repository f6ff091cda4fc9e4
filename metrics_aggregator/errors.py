"""
异常定义

核心聚合逻辑中的错误都不应导致进程退出，最坏情况是某个指标降级为 0。
"""


class MetricsError(Exception):
    """指标聚合相关错误的基类"""


class UninitializedRing(MetricsError):
    """在 initialize() 之前调用了 record()/live_totals()，且未开启惰性初始化"""


class DuplicateKey(MetricsError):
    """快照时间戳与已存储的快照冲突"""

    def __init__(self, timestamp):
        self.timestamp = timestamp
        super().__init__(f"Snapshot already exists for timestamp {timestamp.isoformat()}")


class ProviderUnavailable(MetricsError):
    """资源/连接数采集器暂时无法提供数据"""
