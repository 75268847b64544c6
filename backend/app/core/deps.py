"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

提供仪表盘用户的 JWT 认证依赖。Agent 请求的认证见 app.core.agent_auth。

Provides JWT authentication for dashboard users. Agent authentication lives in app.core.agent_auth.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import decode_token
from app.models.user import User

# Bearer Token 认证方案 (Bearer Token Authentication Scheme)
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    从请求头中提取并验证 JWT，返回当前登录用户 (Extract and validate JWT, return current user)

    令牌缺失、签名无效、类型不是 access 或用户已停用时返回 401。
    """
    payload = decode_token(credentials.credentials) if credentials else None
    if payload is None or payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return user
