"""
Agent 令牌认证模块

验证采集 Agent 每次请求携带的 Bearer Token，返回请求作用域（所属用户 + 令牌 ID），
并在响应发出后异步更新令牌最近使用时间。认证失败在任何业务逻辑之前短路返回 401。
"""
from fastapi import BackgroundTasks, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import database
from app.core.database import get_db
from app.services.credential_vault import AgentScope, authenticate_token, record_token_use

# Agent 专用 Bearer Token 认证方案；缺失或格式错误由 authenticate_token 统一处理为 401
agent_security = HTTPBearer(auto_error=False)

# Agent 接口路径前缀（不含 /api/v1/agent-tokens 仪表盘接口）
AGENT_PATH_PREFIX = "/api/v1/agent/"


async def verify_agent_token(
    background_tasks: BackgroundTasks,
    credentials: HTTPAuthorizationCredentials | None = Depends(agent_security),
    db: AsyncSession = Depends(get_db),
) -> AgentScope:
    """验证 Agent Bearer Token，返回该令牌的请求作用域。"""
    raw_token = credentials.credentials if credentials else None
    agent_token = await authenticate_token(db, raw_token)

    # 最后使用时间仅供参考，写入失败不影响本次请求
    background_tasks.add_task(record_token_use, agent_token.id)

    return AgentScope.from_token(agent_token)


async def check_agent_credentials(request: Request) -> None:
    """
    在依赖注入之外校验 Agent 凭证 (Authenticate an agent request outside dependency injection)

    请求体无法解析时 FastAPI 在执行依赖之前就返回校验错误，由校验错误处理器调用本函数，
    保证 Agent 接口凭证无效时总是返回 401。非 Agent 路径直接放行。

    Raises:
        AuthenticationError: 凭证缺失、过短、未知或已吊销
    """
    if not request.url.path.startswith(AGENT_PATH_PREFIX):
        return
    credentials = await agent_security(request)
    raw_token = credentials.credentials if credentials else None
    async with database.async_session() as session:
        await authenticate_token(session, raw_token)
