"""
Agent 令牌管理路由 (Agent Token Management Router)

功能说明：仪表盘用户管理自己的 Agent 认证令牌及其 Agent 绑定
核心职责：
  - 令牌的安全生成（明文仅返回一次）
  - 令牌列表查询（附带 Agent 绑定信息，供用户审批）
  - 令牌吊销（永久生效，不可恢复）
  - Agent 绑定的批准与拒绝
依赖关系：依赖凭证库与 Agent 身份守卫服务、JWT 用户认证
API端点：POST/GET /api/v1/agent-tokens, DELETE /api/v1/agent-tokens/{id},
         POST /api/v1/agent-tokens/{id}/approve, POST /api/v1/agent-tokens/{id}/reject

Security Design:
  - 令牌只对其所属用户可见、可操作；他人令牌与不存在的令牌返回相同的 404
  - 令牌使用 SHA-256 哈希存储，不保存明文
  - 吊销为软删除，保留记录用于审计
  - 拒绝（reject）只重置绑定，令牌仍然有效；吊销（revoke）使令牌永久失效

Token Format: 64 位十六进制随机字符串（32 字节熵），前 8 位作为展示前缀
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.user import User
from app.schemas.agent_token import AgentTokenCreate, AgentTokenCreated, AgentTokenResponse
from app.schemas.device import MessageResponse
from app.services import credential_vault
from app.services.agent_identity import approve_agent, reject_agent

router = APIRouter(prefix="/api/v1/agent-tokens", tags=["agent-tokens"])


@router.post("", response_model=AgentTokenCreated, status_code=status.HTTP_201_CREATED)
async def create_agent_token(
    body: AgentTokenCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    创建新的 Agent Token (Create New Agent Token)

    令牌只在创建时返回一次，后续无法再次获取明文令牌。

    Usage:
        1. 用户创建令牌并记录明文
        2. 将令牌配置到 Agent 中
        3. Agent 首次心跳后出现在令牌列表中，等待用户批准
    """
    raw_token, agent_token = await credential_vault.issue_token(db, user.id, body.name)
    data = AgentTokenResponse.model_validate(agent_token).model_dump()
    return AgentTokenCreated(**data, token=raw_token)


@router.get("", response_model=list[AgentTokenResponse])
async def list_agent_tokens(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    列出当前用户的 Agent Token (List Own Agent Tokens)

    按创建时间倒序，包含已吊销令牌；不返回明文与哈希。
    """
    return await credential_vault.list_tokens(db, user.id)


@router.delete("/{token_id}", response_model=MessageResponse)
async def revoke_agent_token(
    token_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    吊销 Agent Token (Revoke Agent Token)

    吊销立即生效，使用该令牌的 Agent 下一次请求即返回 401。
    令牌不存在、不属于当前用户或已吊销时返回 404。
    """
    revoked = await credential_vault.revoke_token(db, token_id, user.id)
    if not revoked:
        raise HTTPException(status_code=404, detail="Token not found")
    return MessageResponse(message="Token revoked successfully")


@router.post("/{token_id}/approve", response_model=MessageResponse)
async def approve_agent_token(
    token_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    批准已连接的 Agent (Approve Connected Agent)

    尚无 Agent 连接时返回 409，不支持预先授权未见过的安装。
    """
    await approve_agent(db, token_id, user.id)
    return MessageResponse(message="Agent approved successfully")


@router.post("/{token_id}/reject", response_model=MessageResponse)
async def reject_agent_token(
    token_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    拒绝并重置 Agent 绑定 (Reject and Reset Agent Binding)

    令牌保持有效，下一个发出心跳的 Agent 将重新认领并进入待批准状态。
    """
    await reject_agent(db, token_id, user.id)
    return MessageResponse(message="Agent rejected and reset")
