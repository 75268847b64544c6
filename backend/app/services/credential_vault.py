"""
Agent 凭证库 (Agent Credential Vault)

功能描述 (Description):
    管理 Agent Bearer 令牌的完整生命周期：签发、认证、吊销、列表查询。
    数据库中只保存 SHA-256 摘要与 8 位展示前缀，明文令牌仅在签发时返回一次。

核心规则 (Rules):
    1. 认证只接受未吊销的令牌；吊销提交后的下一次请求立即失败，没有宽限期
    2. 吊销是单向的，revoked_at 一旦写入不会被清空
    3. last_used_at 为参考信息，在响应之后由后台任务写入，写入失败只记录日志
    4. 认证失败统一返回通用提示，不区分"未知"与"已吊销"
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import database
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import generate_agent_token, hash_agent_token
from app.models.agent_token import AgentToken

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or revoked agent token"


@dataclass(frozen=True)
class AgentScope:
    """
    已认证 Agent 请求的作用域 (Scope of an authenticated agent request)

    显式传入每个身份/设备服务调用，服务层不读取任何请求级全局状态。
    """
    owner_id: int
    token_id: int

    @classmethod
    def from_token(cls, token: AgentToken) -> "AgentScope":
        return cls(owner_id=token.owner_id, token_id=token.id)


async def issue_token(db: AsyncSession, owner_id: int, name: str) -> tuple[str, AgentToken]:
    """
    签发新的 Agent Token (Issue a new agent token)

    Returns:
        tuple: (明文令牌, 已持久化的令牌记录)。调用方负责不在别处保存明文。
    """
    raw_token, token_hash, token_prefix = generate_agent_token()
    agent_token = AgentToken(
        owner_id=owner_id,
        name=name,
        token_hash=token_hash,
        token_prefix=token_prefix,
        approved=False,
    )
    db.add(agent_token)
    await db.commit()
    await db.refresh(agent_token)
    logger.info("Issued agent token %s (%s) for user %s", agent_token.id, token_prefix, owner_id)
    return raw_token, agent_token


async def authenticate_token(db: AsyncSession, raw_token: str | None) -> AgentToken:
    """
    校验 Bearer 令牌并返回对应的有效令牌记录 (Authenticate a bearer value)

    Raises:
        AuthenticationError: 令牌缺失、过短、未知或已吊销
    """
    if not raw_token or len(raw_token) < settings.agent_token_min_length:
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)

    result = await db.execute(
        select(AgentToken)
        .where(
            AgentToken.token_hash == hash_agent_token(raw_token),
            AgentToken.revoked_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    agent_token = result.scalar_one_or_none()
    if agent_token is None:
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)
    return agent_token


async def record_token_use(token_id: int) -> None:
    """
    后台任务：更新令牌最后使用时间 (Background task: stamp last_used_at)

    使用独立会话，失败不影响已经完成的请求。
    """
    try:
        async with database.async_session() as session:
            await session.execute(
                update(AgentToken)
                .where(AgentToken.id == token_id)
                .values(last_used_at=datetime.now(timezone.utc))
            )
            await session.commit()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Failed to record last use of agent token %s: %s", token_id, exc)


async def get_owned_token(db: AsyncSession, token_id: int, owner_id: int) -> AgentToken | None:
    """查询属于指定用户且未吊销的令牌，不存在与不属于该用户不做区分。"""
    result = await db.execute(
        select(AgentToken)
        .where(
            AgentToken.id == token_id,
            AgentToken.owner_id == owner_id,
            AgentToken.revoked_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_tokens(db: AsyncSession, owner_id: int) -> list[AgentToken]:
    """列出用户的全部令牌（含已吊销），按创建时间倒序。"""
    result = await db.execute(
        select(AgentToken)
        .where(AgentToken.owner_id == owner_id)
        .order_by(AgentToken.created_at.desc(), AgentToken.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def revoke_token(db: AsyncSession, token_id: int, owner_id: int) -> bool:
    """
    吊销令牌 (Revoke a token)

    只有令牌属于调用者且尚未吊销时才写入 revoked_at；否则返回 False。
    """
    result = await db.execute(
        update(AgentToken)
        .where(
            AgentToken.id == token_id,
            AgentToken.owner_id == owner_id,
            AgentToken.revoked_at.is_(None),
        )
        .values(revoked_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    revoked = result.rowcount > 0
    if revoked:
        logger.info("Revoked agent token %s for user %s", token_id, owner_id)
    return revoked
