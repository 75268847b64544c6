"""
设备对账引擎 (Device Reconciliation Engine)

功能描述 (Description):
    将 Agent 上报的设备快照与数据库中该用户已有的设备集合对齐，
    计算并应用最小的新增/更新/删除集合，使存储状态收敛为 Agent 最近一次上报的内容。

匹配规则 (Matching):
    1. 以 MAC 地址（hardware_address）为匹配键，比较前统一为大写
    2. 没有 MAC 的已有设备无法可靠关联，既不参与匹配也不会被同步删除
    3. 上报中没有 MAC 的设备总是新建
    4. 已有设备中本轮未上报的 MAC 全部删除，连同其网络状态

事务 (Transactions):
    每次调用在单个事务中完成"读取-应用差异-删除剩余"。读取前对用户行加行锁，
    同一用户的并发同步因此串行执行，不会互相删除对方刚创建的设备。
    载荷中任一条目不合法时整个请求在写入前被拒绝。
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.models.device import Device
from app.models.user import User
from app.schemas.device import DeviceRegister, DeviceSyncEntry, DeviceUpdate
from app.services.network_state import delete_network_states, upsert_network_state

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


async def _lock_owner(db: AsyncSession, owner_id: int) -> None:
    # SQLite 忽略 FOR UPDATE，其写事务本身串行
    await db.execute(select(User.id).where(User.id == owner_id).with_for_update())


async def _delete_devices(db: AsyncSession, device_ids: list[int]) -> int:
    if not device_ids:
        return 0
    await delete_network_states(db, device_ids)
    result = await db.execute(
        delete(Device)
        .where(Device.id.in_(device_ids))
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount


def _check_duplicate_addresses(reported: list[DeviceSyncEntry]) -> None:
    """同一载荷中重复的 MAC 会破坏"每个用户每个 MAC 至多一台设备"，写入前拒绝。"""
    seen: dict[str, int] = {}
    errors: dict[str, list[str]] = {}
    for index, entry in enumerate(reported):
        mac = entry.hardware_address
        if mac is None:
            continue
        if mac in seen:
            errors[f"devices.{index}.hardwareAddress"] = [
                f"duplicate hardware address, already reported at devices.{seen[mac]}"
            ]
        else:
            seen[mac] = index
    if errors:
        raise ValidationError("Validation error", errors)


async def get_owned_device(db: AsyncSession, owner_id: int, device_id: int) -> Device | None:
    """查询属于指定用户的设备，不存在与属于他人不做区分。"""
    result = await db.execute(
        select(Device)
        .where(Device.id == device_id, Device.owner_id == owner_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_devices(db: AsyncSession, owner_id: int) -> list[Device]:
    result = await db.execute(
        select(Device)
        .where(Device.owner_id == owner_id)
        .order_by(Device.last_seen_at.desc(), Device.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def sync_devices(db: AsyncSession, owner_id: int, reported: list[DeviceSyncEntry]) -> SyncResult:
    """
    全量同步设备列表 (Full device reconciliation)

    对稳定输入幂等：重复提交相同列表时 created = deleted = 0，updated = 列表长度。

    存储中同一 MAC 的历史重复行只保留 id 最小的一台参与匹配，其余行按未上报处理：
    删除并计入 deleted，同步后每个用户每个 MAC 至多一台设备。

    Args:
        db: 数据库会话
        owner_id: 已认证的用户 ID
        reported: 已通过格式校验的上报设备列表，按输入顺序处理

    Returns:
        SyncResult: 新增、更新、删除计数

    Raises:
        ValidationError: 载荷中存在重复的 MAC 地址
    """
    _check_duplicate_addresses(reported)

    now = datetime.now(timezone.utc)
    result = SyncResult()

    await _lock_owner(db, owner_id)
    existing = await db.execute(
        select(Device)
        .where(Device.owner_id == owner_id)
        .order_by(Device.id)
        .execution_options(populate_existing=True)
    )

    by_address: dict[str, Device] = {}
    surplus: list[int] = []
    for device in existing.scalars().all():
        if device.hardware_address is None:
            continue
        if device.hardware_address in by_address:
            # 历史遗留的重复 MAC：保留最早一台，其余视为未上报
            surplus.append(device.id)
        else:
            by_address[device.hardware_address] = device

    for entry in reported:
        matched = by_address.pop(entry.hardware_address, None) if entry.hardware_address else None
        if matched is not None:
            matched.name = entry.name
            matched.status = entry.status
            matched.last_seen_at = now
            device = matched
            result.updated += 1
        else:
            device = Device(
                owner_id=owner_id,
                name=entry.name,
                hardware_address=entry.hardware_address,
                status=entry.status,
                last_seen_at=now,
                created_at=now,
            )
            db.add(device)
            await db.flush()
            result.created += 1

        if entry.network_address:
            await upsert_network_state(db, device.id, entry.network_address)

    stale_ids = [device.id for device in by_address.values()] + surplus
    result.deleted = await _delete_devices(db, stale_ids)

    await db.commit()
    logger.info(
        "Device sync for user %s: created=%d updated=%d deleted=%d",
        owner_id, result.created, result.updated, result.deleted,
    )
    return result


async def register_device(db: AsyncSession, owner_id: int, payload: DeviceRegister) -> tuple[Device, bool]:
    """
    单设备注册，幂等操作：MAC 已存在则更新，否则新建 (Single-device upsert)

    Returns:
        tuple: (设备, 是否新建)
    """
    now = datetime.now(timezone.utc)
    status = payload.status or "online"

    await _lock_owner(db, owner_id)
    device = None
    if payload.hardware_address:
        existing = await db.execute(
            select(Device)
            .where(Device.owner_id == owner_id, Device.hardware_address == payload.hardware_address)
            .order_by(Device.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        device = existing.scalar_one_or_none()

    created = device is None
    if created:
        device = Device(
            owner_id=owner_id,
            name=payload.name,
            hardware_address=payload.hardware_address,
            status=status,
            last_seen_at=now,
            created_at=now,
        )
        db.add(device)
        await db.flush()
    else:
        device.name = payload.name
        device.status = status
        device.last_seen_at = now

    if payload.network_address:
        await upsert_network_state(db, device.id, payload.network_address)

    await db.commit()
    await db.refresh(device)
    logger.info("Device %s %s for user %s", device.id, "registered" if created else "re-registered", owner_id)
    return device, created


async def update_device(db: AsyncSession, owner_id: int, device_id: int, patch: DeviceUpdate) -> Device:
    """
    部分更新设备 (Partial device update)

    只写入请求中实际出现且非空的字段，未出现的字段保持原值。

    Raises:
        NotFoundError: 设备不存在或不属于该用户
    """
    device = await get_owned_device(db, owner_id, device_id)
    if device is None:
        raise NotFoundError("Device not found")

    fields = patch.model_dump(exclude_unset=True, exclude_none=True)
    network_address = fields.pop("network_address", None)
    for field, value in fields.items():
        setattr(device, field, value)
    device.last_seen_at = datetime.now(timezone.utc)

    if network_address:
        await upsert_network_state(db, device.id, network_address)

    await db.commit()
    await db.refresh(device)
    return device


async def delete_device(db: AsyncSession, owner_id: int, device_id: int) -> None:
    """
    删除单台设备及其网络状态 (Delete one device and its network state)

    Raises:
        NotFoundError: 设备不存在或不属于该用户
    """
    device = await get_owned_device(db, owner_id, device_id)
    if device is None:
        raise NotFoundError("Device not found")
    await _delete_devices(db, [device.id])
    await db.commit()
    logger.info("Device %s deleted for user %s", device_id, owner_id)
