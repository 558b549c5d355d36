"""
核心模块包 (Core Module Package)

配置管理、数据库连接、Redis 连接、异常体系和依赖注入等基础组件。

Configuration management, database and Redis connections, the exception
hierarchy and dependency injection used by both services.
"""
