"""
数据采集器模块

包含 CPU、内存采集器以及连接数统计
"""

from .connections import ConnectionTracker, get_connection_tracker
from .cpu import get_cpu_percent
from .memory import get_memory_usage_mb
from .resources import read_host_resources

__all__ = [
    "ConnectionTracker",
    "get_connection_tracker",
    "get_cpu_percent",
    "get_memory_usage_mb",
    "read_host_resources",
]
