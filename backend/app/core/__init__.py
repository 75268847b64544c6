"""
核心模块包 (Core Module Package)

LanWatch 的基础组件：配置管理、数据库连接、异常处理、用户与 Agent 认证、依赖注入。

Foundational components for LanWatch: configuration, database connections,
exception handling, user and agent authentication, dependency injection.
"""
