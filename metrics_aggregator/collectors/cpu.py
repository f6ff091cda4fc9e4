"""
CPU 采集器

通过 psutil.cpu_times() 两次采样计算 CPU 使用率
"""

from typing import Optional

import psutil

from ..errors import ProviderUnavailable


# 全局变量：保存上一次采样数据 (total, idle)
_last_cpu_stats = None


def get_cpu_percent() -> Optional[float]:
    """
    采集 CPU 使用率

    实现方式：读取累计 CPU 时间两次，计算 delta

    Returns:
        0~100 的浮点数，首次调用返回 None（需要两次采样）

    Raises:
        ProviderUnavailable: psutil 读取失败
    """
    global _last_cpu_stats

    try:
        times = psutil.cpu_times()
    except Exception as e:
        raise ProviderUnavailable(f"cpu_times unavailable: {e}") from e

    total = sum(times)
    # iowait 计入空闲（与 /proc/stat 口径一致）
    idle = times.idle + getattr(times, "iowait", 0.0)

    # 首次调用，保存数据并返回 None
    if _last_cpu_stats is None:
        _last_cpu_stats = (total, idle)
        return None

    last_total, last_idle = _last_cpu_stats
    total_delta = total - last_total
    idle_delta = idle - last_idle

    _last_cpu_stats = (total, idle)

    if total_delta <= 0:
        return 0.0

    cpu_pct = (total_delta - idle_delta) / total_delta * 100.0
    return round(max(0.0, cpu_pct), 2)


def reset_cpu_baseline():
    """清除上一次采样（主要用于测试）"""
    global _last_cpu_stats
    _last_cpu_stats = None
