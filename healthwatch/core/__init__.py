"""
核心模块包 (Core Module Package)

HealthWatch 的基础组件：配置管理、数据库连接、Redis 客户端、异常处理与认证依赖。

Foundational components for HealthWatch: configuration, database connections,
the Redis client, exception handling and authentication dependencies.
"""
