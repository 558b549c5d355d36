"""
configlog

配置中心与日志聚合服务，基于 Redis 的 cache-aside 读写一致性协议。

Configuration store and log aggregation services sharing one cache-aside
consistency protocol between a relational store and Redis.
"""

__version__ = "0.1.0"
