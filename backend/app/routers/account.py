"""
账户路由模块 (Account Router)

提供账户注销：删除用户及其全部 Agent 令牌、设备与设备网络状态。
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.agent_token import AgentToken
from app.models.device import Device
from app.models.user import User
from app.services.network_state import delete_network_states

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/account", tags=["account"])


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """注销当前账户，按 网络状态 → 设备 → 令牌 → 用户 的顺序在同一事务内删除。"""
    user_id = user.id
    result = await db.execute(select(Device.id).where(Device.owner_id == user_id))
    await delete_network_states(db, list(result.scalars().all()))
    await db.execute(delete(Device).where(Device.owner_id == user_id).execution_options(synchronize_session="evaluate"))
    await db.execute(delete(AgentToken).where(AgentToken.owner_id == user_id).execution_options(synchronize_session="evaluate"))
    await db.execute(delete(User).where(User.id == user_id).execution_options(synchronize_session="evaluate"))
    await db.commit()
    logger.info("Account %s deleted", user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
