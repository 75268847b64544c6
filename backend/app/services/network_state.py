"""
设备网络状态跟踪 (Device Network State Tracker)

一对一附表：记录每台设备最近一次观测到的网络地址。
只由设备同步/注册流程在同一事务内写入，设备删除时随之删除。
"""
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.network_state import NetworkState


async def get_network_state(db: AsyncSession, device_id: int) -> NetworkState | None:
    result = await db.execute(
        select(NetworkState)
        .where(NetworkState.device_id == device_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_network_state(
    db: AsyncSession,
    device_id: int,
    network_address: str,
    is_authoritative: bool = False,
) -> NetworkState:
    """按 device_id 唯一键插入或更新网络状态，不提交事务。"""
    state = await get_network_state(db, device_id)
    if state is None:
        state = NetworkState(device_id=device_id)
        db.add(state)
    state.network_address = network_address
    state.is_authoritative = is_authoritative
    state.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return state


async def delete_network_states(db: AsyncSession, device_ids: list[int]) -> None:
    """删除一批设备的网络状态，不提交事务。"""
    if not device_ids:
        return
    await db.execute(
        delete(NetworkState)
        .where(NetworkState.device_id.in_(device_ids))
        .execution_options(synchronize_session="evaluate")
    )
