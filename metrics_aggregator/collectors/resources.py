"""
主机资源读数

组合 CPU 与内存采集器，单项失败不影响另一项。
"""

import logging

from ..errors import ProviderUnavailable
from ..models import ResourceReading
from .cpu import get_cpu_percent
from .memory import get_memory_usage_mb

logger = logging.getLogger(__name__)


def read_host_resources() -> ResourceReading:
    """
    采集当前内存和 CPU 使用情况

    Returns:
        ResourceReading，采集失败的字段为 None
    """
    reading = ResourceReading()

    try:
        reading.memory_usage_mb = get_memory_usage_mb()
    except ProviderUnavailable as e:
        logger.warning(f"Memory provider unavailable: {e}")

    try:
        reading.cpu_usage_percent = get_cpu_percent()
    except ProviderUnavailable as e:
        logger.warning(f"CPU provider unavailable: {e}")

    return reading
