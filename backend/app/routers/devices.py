"""
设备查询路由模块 (Device Query Router)

功能说明：仪表盘只读查看当前用户的设备及其最近网络状态
API端点：GET /devices, GET /devices/{id}, GET /devices/{id}/network-state

设备的增删改只由 Agent 上报驱动（见 app.routers.agent）。
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import get_current_user
from app.models.user import User
from app.schemas.device import DeviceResponse, NetworkStateResponse
from app.services.device_reconciler import get_owned_device, list_devices
from app.services.network_state import get_network_state

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


@router.get("", response_model=list[DeviceResponse])
async def list_own_devices(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """列出当前用户的设备，最近上报的在前。"""
    return await list_devices(db, user.id)


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(
    device_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """设备详情，不存在或不属于当前用户时返回 404。"""
    device = await get_owned_device(db, user.id, device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.get("/{device_id}/network-state", response_model=NetworkStateResponse | None)
async def get_device_network_state(
    device_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """设备最近网络状态；设备尚无网络状态时返回 null。"""
    device = await get_owned_device(db, user.id, device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return await get_network_state(db, device_id)
