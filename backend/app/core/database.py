"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话管理，为 LanWatch 提供数据持久化支持。
包含异步引擎创建、会话工厂配置、ORM 基类定义和依赖注入函数。

Creates database engine and session management based on SQLAlchemy 2.0 async mode.
Includes async engine creation, session factory configuration, ORM base class
definition, and the request-scoped session dependency.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings

# 创建异步数据库引擎 (Create Async Database Engine)
# pool_pre_ping 避免拿到已被数据库关闭的连接
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
)

# 创建异步会话工厂 (Create Async Session Factory)
# 提交后不过期对象，便于序列化已保存的数据 (Don't expire objects after commit)
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """ORM 模型基类 (ORM Model Base Class)"""
    pass


async def get_db() -> AsyncSession:
    """
    FastAPI 依赖项：获取数据库会话 (FastAPI Dependency: Get Database Session)

    每个请求独立一个会话，请求结束后自动关闭，未提交的事务随之回滚。

    Yields:
        AsyncSession: 异步数据库会话实例 (Async database session instance)
    """
    async with async_session() as session:
        yield session
