"""
内存采集器

采集主机已用内存（MB）
"""

import psutil

from ..errors import ProviderUnavailable

BYTES_PER_MB = 1024 * 1024


def get_memory_usage_mb() -> float:
    """
    采集已用内存

    Returns:
        已用内存 MB（保留两位小数）

    Raises:
        ProviderUnavailable: psutil 读取失败
    """
    try:
        vm = psutil.virtual_memory()
    except Exception as e:
        raise ProviderUnavailable(f"virtual_memory unavailable: {e}") from e

    return round(vm.used / BYTES_PER_MB, 2)
