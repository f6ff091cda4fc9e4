"""
Metrics Aggregator - 服务器实时指标聚合

负责：
- 接收每次更新的耗时样本，按秒落入 60 个环形时间桶
- 每秒汇总窗口内吞吐和平均耗时，合并内存/CPU/连接数生成快照
- 清理超过保留期（60s）的快照
- 提供 REST API 给前端
"""

__version__ = "1.0.0"
__author__ = "AI-A"
