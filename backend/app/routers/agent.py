"""
Agent 数据上报路由

提供 Agent 心跳（身份绑定判定）、单设备注册/更新/删除、设备全量同步等接口。
所有接口先经过 verify_agent_token 认证，作用域（所属用户）显式传入服务层。
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.agent_auth import verify_agent_token
from app.core.config import settings
from app.core.database import get_db
from app.schemas.agent import AgentHeartbeatRequest, AgentHeartbeatResponse
from app.schemas.device import (
    DeviceRegister,
    DeviceResponse,
    DeviceSyncRequest,
    DeviceSyncResponse,
    DeviceUpdate,
    MessageResponse,
)
from app.services import device_reconciler
from app.services.agent_identity import HEARTBEAT_MESSAGES, AgentIdentity, process_heartbeat
from app.services.credential_vault import AgentScope

router = APIRouter(prefix="/api/v1/agent", tags=["agent"])


@router.post("/heartbeat", response_model=AgentHeartbeatResponse, response_model_exclude_none=True)
async def heartbeat(
    body: AgentHeartbeatRequest,
    scope: AgentScope = Depends(verify_agent_token),
    db: AsyncSession = Depends(get_db),
):
    """Agent 心跳接口：首次连接绑定身份，之后判定 ok / pending_approval / device_mismatch。"""
    identity = AgentIdentity(
        installation_id=body.installation_id,
        hardware_address=body.hardware_address,
        hostname=body.hostname,
        network_address=body.network_address,
    )
    result = await process_heartbeat(db, scope, identity)
    return AgentHeartbeatResponse(
        status=result.value,
        server_time=datetime.now(timezone.utc),
        message=HEARTBEAT_MESSAGES[result],
        heartbeat_interval=settings.heartbeat_interval,
    )


@router.post("/devices", response_model=DeviceResponse, status_code=status.HTTP_201_CREATED)
async def register_device(
    body: DeviceRegister,
    response: Response,
    scope: AgentScope = Depends(verify_agent_token),
    db: AsyncSession = Depends(get_db),
):
    """单设备注册，MAC 已存在时更新并返回 200，否则新建并返回 201。"""
    device, created = await device_reconciler.register_device(db, scope.owner_id, body)
    if not created:
        response.status_code = status.HTTP_200_OK
    return device


@router.put("/devices/sync", response_model=DeviceSyncResponse)
async def sync_devices(
    body: DeviceSyncRequest,
    scope: AgentScope = Depends(verify_agent_token),
    db: AsyncSession = Depends(get_db),
):
    """设备全量同步：按 MAC 对齐，新增、更新并删除本轮未上报的设备。"""
    result = await device_reconciler.sync_devices(db, scope.owner_id, body.devices)
    return DeviceSyncResponse(**result.as_dict())


@router.patch("/devices/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: int,
    body: DeviceUpdate,
    scope: AgentScope = Depends(verify_agent_token),
    db: AsyncSession = Depends(get_db),
):
    """部分更新设备，只写入请求中出现的字段。"""
    return await device_reconciler.update_device(db, scope.owner_id, device_id, body)


@router.delete("/devices/{device_id}", response_model=MessageResponse)
async def delete_device(
    device_id: int,
    scope: AgentScope = Depends(verify_agent_token),
    db: AsyncSession = Depends(get_db),
):
    """删除设备及其网络状态。"""
    await device_reconciler.delete_device(db, scope.owner_id, device_id)
    return MessageResponse(message="Device deleted successfully")
