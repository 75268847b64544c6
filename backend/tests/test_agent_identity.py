"""Agent 身份守卫测试 — 首次绑定、待批准、批准、安装 ID 不匹配、拒绝重置。"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from app.core import database
from app.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from app.models.agent_token import AgentToken
from app.services import agent_identity
from app.services.agent_identity import (
    AgentIdentity,
    HeartbeatStatus,
    approve_agent,
    process_heartbeat,
    reject_agent,
)
from app.services.credential_vault import revoke_token

AGENT_A = AgentIdentity(
    installation_id="install-a",
    hardware_address="AA:BB:CC:DD:EE:01",
    hostname="nas",
    network_address="192.168.1.10",
)
AGENT_B = AgentIdentity(
    installation_id="install-b",
    hardware_address="AA:BB:CC:DD:EE:02",
    hostname="intruder",
    network_address="192.168.1.66",
)


async def _reload(db_session, token_id: int) -> AgentToken:
    result = await db_session.execute(
        select(AgentToken).where(AgentToken.id == token_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestFirstContact:
    async def test_unbound_token_binds_and_waits(self, db_session, agent_scope):
        status = await process_heartbeat(db_session, agent_scope, AGENT_A)
        assert status == HeartbeatStatus.PENDING_APPROVAL

        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_installation_id == "install-a"
        assert token.agent_hardware_address == "AA:BB:CC:DD:EE:01"
        assert token.agent_hostname == "nas"
        assert token.agent_network_address == "192.168.1.10"
        assert token.approved is False
        assert token.first_connected_at is not None
        assert token.last_heartbeat_at is not None

    async def test_same_agent_stays_pending_until_approved(self, db_session, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        assert await process_heartbeat(db_session, agent_scope, AGENT_A) == HeartbeatStatus.PENDING_APPROVAL


class TestMismatch:
    async def test_other_installation_while_pending(self, db_session, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        before = await _reload(db_session, agent_scope.token_id)
        first_connected = before.first_connected_at

        assert await process_heartbeat(db_session, agent_scope, AGENT_B) == HeartbeatStatus.DEVICE_MISMATCH

        after = await _reload(db_session, agent_scope.token_id)
        assert after.agent_installation_id == "install-a"
        assert after.agent_hostname == "nas"
        assert after.first_connected_at == first_connected

    async def test_other_installation_after_approval(self, db_session, owner, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        await approve_agent(db_session, agent_scope.token_id, owner.id)

        assert await process_heartbeat(db_session, agent_scope, AGENT_B) == HeartbeatStatus.DEVICE_MISMATCH
        assert await process_heartbeat(db_session, agent_scope, AGENT_A) == HeartbeatStatus.OK

        token = await _reload(db_session, agent_scope.token_id)
        assert token.approved is True
        assert token.agent_installation_id == "install-a"


class TestApproval:
    async def test_approved_agent_gets_ok(self, db_session, owner, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        token = await approve_agent(db_session, agent_scope.token_id, owner.id)
        assert token.approved is True
        assert await process_heartbeat(db_session, agent_scope, AGENT_A) == HeartbeatStatus.OK

    async def test_metadata_drift_keeps_binding(self, db_session, owner, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        await approve_agent(db_session, agent_scope.token_id, owner.id)

        drifted = AgentIdentity(
            installation_id="install-a",
            hardware_address="AA:BB:CC:DD:EE:09",
            hostname="nas-renamed",
            network_address="192.168.1.77",
        )
        assert await process_heartbeat(db_session, agent_scope, drifted) == HeartbeatStatus.OK

        token = await _reload(db_session, agent_scope.token_id)
        assert token.approved is True
        assert token.agent_hostname == "nas-renamed"
        assert token.agent_hardware_address == "AA:BB:CC:DD:EE:09"
        assert token.agent_network_address == "192.168.1.77"

    async def test_omitted_network_address_keeps_previous(self, db_session, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        without_ip = AgentIdentity(
            installation_id="install-a", hardware_address="AA:BB:CC:DD:EE:01", hostname="nas"
        )
        await process_heartbeat(db_session, agent_scope, without_ip)
        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_network_address == "192.168.1.10"

    async def test_approve_unbound_token_conflicts(self, db_session, owner, agent_scope):
        with pytest.raises(ConflictError):
            await approve_agent(db_session, agent_scope.token_id, owner.id)
        token = await _reload(db_session, agent_scope.token_id)
        assert token.approved is False

    async def test_approve_foreign_token(self, db_session, other_user, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        with pytest.raises(NotFoundError):
            await approve_agent(db_session, agent_scope.token_id, other_user.id)

    async def test_approve_revoked_token(self, db_session, owner, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        await revoke_token(db_session, agent_scope.token_id, owner.id)
        with pytest.raises(NotFoundError):
            await approve_agent(db_session, agent_scope.token_id, owner.id)


class TestReject:
    async def test_reject_resets_binding(self, db_session, owner, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        await approve_agent(db_session, agent_scope.token_id, owner.id)

        token = await reject_agent(db_session, agent_scope.token_id, owner.id)
        assert token.approved is False
        assert token.agent_installation_id is None
        assert token.agent_hardware_address is None
        assert token.agent_hostname is None
        assert token.agent_network_address is None
        assert token.first_connected_at is None
        # 令牌本身仍然有效
        assert token.revoked_at is None

    async def test_next_agent_rebinds_after_reject(self, db_session, owner, agent_scope):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        await reject_agent(db_session, agent_scope.token_id, owner.id)

        assert await process_heartbeat(db_session, agent_scope, AGENT_B) == HeartbeatStatus.PENDING_APPROVAL
        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_installation_id == "install-b"
        assert token.agent_hostname == "intruder"
        assert token.approved is False

    async def test_reject_foreign_token(self, db_session, other_user, agent_scope):
        with pytest.raises(NotFoundError):
            await reject_agent(db_session, agent_scope.token_id, other_user.id)


class TestRevokedDuringHeartbeat:
    async def test_revoked_token_cannot_heartbeat(self, db_session, owner, agent_scope):
        await revoke_token(db_session, agent_scope.token_id, owner.id)
        with pytest.raises(AuthenticationError):
            await process_heartbeat(db_session, agent_scope, AGENT_A)


def _claim_between_read_and_write(monkeypatch, winner: AgentIdentity) -> list:
    """在心跳读取绑定之后、比较并交换之前，由另一个会话抢先认领令牌。"""
    original = agent_identity._load_binding
    claims = []

    async def load_then_race(db, token_id):
        token = await original(db, token_id)
        if not claims:
            async with database.async_session() as other:
                claims.append(
                    await agent_identity._claim_binding(other, token_id, winner, datetime.now(timezone.utc))
                )
        return token

    monkeypatch.setattr(agent_identity, "_load_binding", load_then_race)
    return claims


class TestConcurrentFirstContact:
    async def test_loser_with_other_installation_sees_mismatch(self, db_session, agent_scope, monkeypatch):
        claims = _claim_between_read_and_write(monkeypatch, AGENT_A)

        assert await process_heartbeat(db_session, agent_scope, AGENT_B) == HeartbeatStatus.DEVICE_MISMATCH

        assert claims == [True]
        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_installation_id == "install-a"
        assert token.agent_hostname == "nas"

    async def test_loser_with_same_installation_stays_pending(self, db_session, agent_scope, monkeypatch):
        claims = _claim_between_read_and_write(monkeypatch, AGENT_A)

        assert await process_heartbeat(db_session, agent_scope, AGENT_A) == HeartbeatStatus.PENDING_APPROVAL

        assert claims == [True]
        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_installation_id == "install-a"
        assert token.approved is False


def _reset_between_read_and_approve(monkeypatch, owner_id: int, rebind_to: AgentIdentity | None = None) -> None:
    """在批准读取绑定之后、写入之前，由另一个会话拒绝（并可选地重新认领）该绑定。"""
    original = agent_identity.get_owned_token
    raced = []

    async def read_then_reset(db, token_id, token_owner_id):
        token = await original(db, token_id, token_owner_id)
        if not raced:
            raced.append(token_id)
            async with database.async_session() as other:
                await reject_agent(other, token_id, owner_id)
                if rebind_to is not None:
                    await agent_identity._claim_binding(other, token_id, rebind_to, datetime.now(timezone.utc))
        return token

    monkeypatch.setattr(agent_identity, "get_owned_token", read_then_reset)


class TestConcurrentApproval:
    async def test_reject_between_read_and_approve(self, db_session, owner, agent_scope, monkeypatch):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        _reset_between_read_and_approve(monkeypatch, owner.id)

        with pytest.raises(ConflictError):
            await approve_agent(db_session, agent_scope.token_id, owner.id)

        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_installation_id is None
        assert token.approved is False

    async def test_rebind_between_read_and_approve(self, db_session, owner, agent_scope, monkeypatch):
        await process_heartbeat(db_session, agent_scope, AGENT_A)
        _reset_between_read_and_approve(monkeypatch, owner.id, rebind_to=AGENT_B)

        with pytest.raises(ConflictError):
            await approve_agent(db_session, agent_scope.token_id, owner.id)

        # 新认领的安装不会被顺带批准
        token = await _reload(db_session, agent_scope.token_id)
        assert token.agent_installation_id == "install-b"
        assert token.approved is False
