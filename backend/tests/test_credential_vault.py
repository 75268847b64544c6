"""凭证库服务测试 — 签发、认证、吊销、列表、最后使用时间。"""
import hashlib

import pytest
from sqlalchemy import select

from app.core.exceptions import AuthenticationError
from app.models.agent_token import AgentToken
from app.services.credential_vault import (
    authenticate_token,
    issue_token,
    list_tokens,
    record_token_use,
    revoke_token,
)


class TestIssue:
    async def test_plaintext_returned_once_and_only_hash_stored(self, db_session, owner):
        raw_token, record = await issue_token(db_session, owner.id, "laptop")
        assert len(raw_token) == 64
        int(raw_token, 16)  # 纯十六进制
        assert record.token_hash == hashlib.sha256(raw_token.encode()).hexdigest()
        assert record.token_prefix == raw_token[:8]
        assert record.revoked_at is None
        assert record.approved is False
        assert record.agent_installation_id is None

    async def test_tokens_are_unique(self, db_session, owner):
        first, _ = await issue_token(db_session, owner.id, "a")
        second, _ = await issue_token(db_session, owner.id, "b")
        assert first != second


class TestAuthenticate:
    async def test_valid_token(self, db_session, issued_token):
        raw_token, record = issued_token
        token = await authenticate_token(db_session, raw_token)
        assert token.id == record.id

    async def test_unknown_token(self, db_session, issued_token):
        with pytest.raises(AuthenticationError):
            await authenticate_token(db_session, "f" * 64)

    async def test_short_token_rejected(self, db_session, issued_token):
        raw_token, _ = issued_token
        with pytest.raises(AuthenticationError):
            await authenticate_token(db_session, raw_token[:16])

    async def test_missing_token(self, db_session):
        with pytest.raises(AuthenticationError):
            await authenticate_token(db_session, None)

    async def test_revoked_token_fails_on_next_call(self, db_session, owner, issued_token):
        raw_token, record = issued_token
        await authenticate_token(db_session, raw_token)
        assert await revoke_token(db_session, record.id, owner.id) is True
        with pytest.raises(AuthenticationError):
            await authenticate_token(db_session, raw_token)


class TestRevoke:
    async def test_revoke_is_not_repeatable(self, db_session, owner, issued_token):
        _, record = issued_token
        assert await revoke_token(db_session, record.id, owner.id) is True
        assert await revoke_token(db_session, record.id, owner.id) is False

    async def test_revoke_foreign_token(self, db_session, other_user, issued_token):
        raw_token, record = issued_token
        assert await revoke_token(db_session, record.id, other_user.id) is False
        # 令牌仍然可用
        assert (await authenticate_token(db_session, raw_token)).id == record.id

    async def test_revoke_missing_token(self, db_session, owner):
        assert await revoke_token(db_session, 9999, owner.id) is False


class TestListAndUsage:
    async def test_list_only_own_tokens(self, db_session, owner, other_user):
        await issue_token(db_session, owner.id, "mine")
        await issue_token(db_session, other_user.id, "theirs")
        tokens = await list_tokens(db_session, owner.id)
        assert [t.name for t in tokens] == ["mine"]

    async def test_record_token_use(self, db_session, issued_token):
        _, record = issued_token
        await record_token_use(record.id)
        result = await db_session.execute(
            select(AgentToken).where(AgentToken.id == record.id).execution_options(populate_existing=True)
        )
        assert result.scalar_one().last_used_at is not None
