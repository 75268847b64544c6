"""
LanWatch 测试基础配置

提供 SQLite in-memory 异步数据库、FastAPI 测试客户端、用户与 Agent 令牌等通用 fixture。
所有测试使用隔离的 SQLite 数据库，不依赖外部 PostgreSQL。
"""
from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

# 必须在导入 app 之前设置环境变量，避免真实连接
import os
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

from app.core.database import Base, async_session, engine, get_db
from app.core.security import create_access_token, hash_password
from app.models.user import User
from app.services.credential_vault import AgentScope, issue_token


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """每个测试前创建所有表，测试后清空。"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """提供配置好依赖覆盖的异步 HTTP 测试客户端。"""
    from app.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, email: str, name: str) -> User:
    user = User(
        email=email,
        name=name,
        hashed_password=hash_password("secret123"),
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    """令牌与设备的所属用户。"""
    return await _create_user(db_session, "owner@test.com", "Owner")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """另一个用户，用于验证跨用户隔离。"""
    return await _create_user(db_session, "other@test.com", "Other")


@pytest_asyncio.fixture
async def auth_headers(owner: User) -> dict:
    """所属用户的仪表盘认证头。"""
    return {"Authorization": f"Bearer {create_access_token(str(owner.id))}"}


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    """另一个用户的仪表盘认证头。"""
    return {"Authorization": f"Bearer {create_access_token(str(other_user.id))}"}


@pytest_asyncio.fixture
async def issued_token(db_session: AsyncSession, owner: User):
    """为所属用户签发一个 Agent 令牌，返回 (明文, 记录)。"""
    return await issue_token(db_session, owner.id, "home-agent")


@pytest_asyncio.fixture
async def agent_headers(issued_token) -> dict:
    """Agent 认证头。"""
    raw_token, _ = issued_token
    return {"Authorization": f"Bearer {raw_token}"}


@pytest_asyncio.fixture
async def agent_scope(issued_token) -> AgentScope:
    """服务层测试使用的 Agent 作用域。"""
    _, agent_token = issued_token
    return AgentScope.from_token(agent_token)
