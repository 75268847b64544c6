"""
Agent 身份守卫 (Agent Identity Guard)

功能描述 (Description):
    维护"一个令牌只绑定一个 Agent 安装"的状态机，并在每次心跳时判定绑定状态。

状态 (States):
    UNBOUND   - 从未有 Agent 连接过（agent_installation_id 为空）
    PENDING   - 已绑定某个安装 ID，等待仪表盘用户批准
    APPROVED  - 已绑定且已批准
    MISMATCH  - 非持久化状态：另一个安装 ID 在使用同一令牌，只读判定，不修改绑定

绑定键 (Binding key):
    以 Agent 首次运行时生成并持久化的安装 ID 为准。MAC 地址、主机名、IP 仅作为展示给审批人的
    描述信息，允许随 DHCP、网卡更换等自然漂移而不破坏绑定。

并发 (Concurrency):
    UNBOUND → PENDING 通过条件 UPDATE（WHERE agent_installation_id IS NULL）实现比较并交换，
    两个同时到达的首次心跳只有一个能赢；输家重新读取绑定后被判定为 MISMATCH 或同一身份。
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from app.models.agent_token import AgentToken
from app.services.credential_vault import INVALID_TOKEN_MESSAGE, AgentScope, get_owned_token

logger = logging.getLogger(__name__)

# 绑定在读与写之间被并发修改时的最大重试次数
_MAX_ATTEMPTS = 3


class HeartbeatStatus(str, enum.Enum):
    """心跳判定结果，取值即接口返回的 status 字段。"""
    OK = "ok"
    PENDING_APPROVAL = "pending_approval"
    DEVICE_MISMATCH = "device_mismatch"


HEARTBEAT_MESSAGES = {
    HeartbeatStatus.OK: None,
    HeartbeatStatus.PENDING_APPROVAL: "Waiting for approval from dashboard user.",
    HeartbeatStatus.DEVICE_MISMATCH: (
        "A different agent is attempting to use this token. Please check your dashboard."
    ),
}


@dataclass(frozen=True)
class AgentIdentity:
    """Agent 在心跳中自报的身份。"""
    installation_id: str
    hardware_address: str | None = None
    hostname: str | None = None
    network_address: str | None = None


async def _load_binding(db: AsyncSession, token_id: int) -> AgentToken:
    result = await db.execute(
        select(AgentToken)
        .where(AgentToken.id == token_id, AgentToken.revoked_at.is_(None))
        .execution_options(populate_existing=True)
    )
    token = result.scalar_one_or_none()
    if token is None:
        # 认证通过后令牌被吊销
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)
    return token


async def _claim_binding(db: AsyncSession, token_id: int, identity: AgentIdentity, now: datetime) -> bool:
    """UNBOUND → PENDING 的比较并交换，返回是否赢得绑定。"""
    result = await db.execute(
        update(AgentToken)
        .where(
            AgentToken.id == token_id,
            AgentToken.agent_installation_id.is_(None),
            AgentToken.revoked_at.is_(None),
        )
        .values(
            agent_installation_id=identity.installation_id,
            agent_hardware_address=identity.hardware_address,
            agent_hostname=identity.hostname,
            agent_network_address=identity.network_address,
            approved=False,
            first_connected_at=now,
            last_heartbeat_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def _refresh_metadata(db: AsyncSession, token_id: int, identity: AgentIdentity, now: datetime) -> bool:
    """同一安装 ID 的心跳：更新可漂移的描述信息。绑定已被改动时返回 False。"""
    values = {"last_heartbeat_at": now}
    if identity.hardware_address is not None:
        values["agent_hardware_address"] = identity.hardware_address
    if identity.hostname is not None:
        values["agent_hostname"] = identity.hostname
    if identity.network_address is not None:
        values["agent_network_address"] = identity.network_address

    result = await db.execute(
        update(AgentToken)
        .where(
            AgentToken.id == token_id,
            AgentToken.agent_installation_id == identity.installation_id,
            AgentToken.revoked_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def process_heartbeat(db: AsyncSession, scope: AgentScope, identity: AgentIdentity) -> HeartbeatStatus:
    """
    处理一次心跳并返回判定结果 (Evaluate one heartbeat)

    Args:
        db: 数据库会话
        scope: 已认证的令牌作用域
        identity: Agent 自报身份

    Returns:
        HeartbeatStatus: ok / pending_approval / device_mismatch

    Raises:
        AuthenticationError: 令牌在认证之后被吊销
        ConflictError: 绑定在多次重试中持续被并发修改
    """
    for _ in range(_MAX_ATTEMPTS):
        now = datetime.now(timezone.utc)
        token = await _load_binding(db, scope.token_id)

        if not token.is_bound:
            if await _claim_binding(db, scope.token_id, identity, now):
                logger.info(
                    "Agent token %s bound to installation %s (host=%s, mac=%s), awaiting approval",
                    scope.token_id, identity.installation_id, identity.hostname, identity.hardware_address,
                )
                return HeartbeatStatus.PENDING_APPROVAL
            continue

        if token.agent_installation_id != identity.installation_id:
            logger.warning(
                "Agent token %s is bound to installation %s but installation %s (host=%s) presented it",
                scope.token_id, token.agent_installation_id, identity.installation_id, identity.hostname,
            )
            return HeartbeatStatus.DEVICE_MISMATCH

        approved = token.approved
        if await _refresh_metadata(db, scope.token_id, identity, now):
            return HeartbeatStatus.OK if approved else HeartbeatStatus.PENDING_APPROVAL

    raise ConflictError("Agent binding changed concurrently, please retry")


async def approve_agent(db: AsyncSession, token_id: int, owner_id: int) -> AgentToken:
    """
    批准当前绑定的 Agent (Approve the currently bound agent)

    只能批准已经连接过的 Agent；批准的是读取时看到的那个安装 ID，
    若期间绑定被重置或换成其他安装，批准失败。

    Raises:
        NotFoundError: 令牌不存在、已吊销或不属于该用户
        ConflictError: 尚无 Agent 连接，或绑定已变化
    """
    token = await get_owned_token(db, token_id, owner_id)
    if token is None:
        raise NotFoundError("Token not found")
    if not token.is_bound:
        raise ConflictError("No agent has connected with this token yet")

    installation_id = token.agent_installation_id
    result = await db.execute(
        update(AgentToken)
        .where(
            AgentToken.id == token_id,
            AgentToken.owner_id == owner_id,
            AgentToken.agent_installation_id == installation_id,
            AgentToken.revoked_at.is_(None),
        )
        .values(approved=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount == 0:
        raise ConflictError("Agent binding changed, reload and try again")

    logger.info("Agent token %s: installation %s approved by user %s", token_id, installation_id, owner_id)
    return await get_owned_token(db, token_id, owner_id)


async def reject_agent(db: AsyncSession, token_id: int, owner_id: int) -> AgentToken:
    """
    拒绝当前绑定并重置为 UNBOUND (Reject the binding and reset to UNBOUND)

    与吊销不同：令牌继续有效，下一个发出心跳的 Agent 可以重新认领。

    Raises:
        NotFoundError: 令牌不存在、已吊销或不属于该用户
    """
    result = await db.execute(
        update(AgentToken)
        .where(
            AgentToken.id == token_id,
            AgentToken.owner_id == owner_id,
            AgentToken.revoked_at.is_(None),
        )
        .values(
            approved=False,
            agent_installation_id=None,
            agent_hardware_address=None,
            agent_hostname=None,
            agent_network_address=None,
            first_connected_at=None,
            last_heartbeat_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount == 0:
        raise NotFoundError("Token not found")

    logger.info("Agent token %s binding rejected and reset by user %s", token_id, owner_id)
    return await get_owned_token(db, token_id, owner_id)
