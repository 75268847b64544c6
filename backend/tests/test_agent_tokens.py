"""Agent Token 管理路由测试。"""
from httpx import AsyncClient

HEARTBEAT = {
    "installationId": "install-a",
    "hardwareAddress": "AA:BB:CC:DD:EE:01",
    "hostname": "nas",
}


class TestAgentTokens:
    async def test_create_token(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/agent-tokens", headers=auth_headers, json={
            "name": "Home Agent",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Home Agent"
        assert len(data["token"]) == 64  # 首次返回明文 token
        assert data["tokenPrefix"] == data["token"][:8]
        assert data["approved"] is False
        assert data["agentInstallationId"] is None

    async def test_create_token_requires_login(self, client: AsyncClient):
        resp = await client.post("/api/v1/agent-tokens", json={"name": "Test"})
        assert resp.status_code == 401

    async def test_create_token_empty_name(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/agent-tokens", headers=auth_headers, json={"name": ""})
        assert resp.status_code == 400
        assert "name" in resp.json()["errors"]

    async def test_created_token_authenticates_agent(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/agent-tokens", headers=auth_headers, json={"name": "T1"})
        token = resp.json()["token"]
        resp = await client.post(
            "/api/v1/agent/heartbeat", json=HEARTBEAT, headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 200

    async def test_list_tokens_hides_secrets(self, client: AsyncClient, auth_headers):
        await client.post("/api/v1/agent-tokens", headers=auth_headers, json={"name": "T1"})
        resp = await client.get("/api/v1/agent-tokens", headers=auth_headers)
        assert resp.status_code == 200
        [token] = resp.json()
        assert "token" not in token
        assert "tokenHash" not in token

    async def test_list_tokens_only_own(self, client: AsyncClient, auth_headers, other_headers):
        await client.post("/api/v1/agent-tokens", headers=other_headers, json={"name": "Theirs"})
        resp = await client.get("/api/v1/agent-tokens", headers=auth_headers)
        assert resp.json() == []

    async def test_revoke_token(self, client: AsyncClient, auth_headers):
        create_resp = await client.post("/api/v1/agent-tokens", headers=auth_headers, json={"name": "ToRevoke"})
        token_id = create_resp.json()["id"]
        resp = await client.delete(f"/api/v1/agent-tokens/{token_id}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Token revoked successfully"}

        [listed] = (await client.get("/api/v1/agent-tokens", headers=auth_headers)).json()
        assert listed["revokedAt"] is not None

        resp = await client.delete(f"/api/v1/agent-tokens/{token_id}", headers=auth_headers)
        assert resp.status_code == 404

    async def test_revoke_foreign_token(self, client: AsyncClient, auth_headers, other_headers):
        create_resp = await client.post("/api/v1/agent-tokens", headers=other_headers, json={"name": "Theirs"})
        token_id = create_resp.json()["id"]
        resp = await client.delete(f"/api/v1/agent-tokens/{token_id}", headers=auth_headers)
        assert resp.status_code == 404
        assert resp.json() == {"message": "Token not found"}

    async def test_revoke_nonexistent(self, client: AsyncClient, auth_headers):
        resp = await client.delete("/api/v1/agent-tokens/99999", headers=auth_headers)
        assert resp.status_code == 404


class TestAgentApproval:
    async def test_approve_before_any_agent_connects(self, client: AsyncClient, auth_headers, issued_token):
        _, record = issued_token
        resp = await client.post(f"/api/v1/agent-tokens/{record.id}/approve", headers=auth_headers)
        assert resp.status_code == 409

    async def test_approve_connected_agent(self, client: AsyncClient, auth_headers, agent_headers, issued_token):
        _, record = issued_token
        await client.post("/api/v1/agent/heartbeat", json=HEARTBEAT, headers=agent_headers)

        resp = await client.post(f"/api/v1/agent-tokens/{record.id}/approve", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Agent approved successfully"}

        [listed] = (await client.get("/api/v1/agent-tokens", headers=auth_headers)).json()
        assert listed["approved"] is True

    async def test_approve_foreign_token(self, client: AsyncClient, other_headers, agent_headers, issued_token):
        _, record = issued_token
        await client.post("/api/v1/agent/heartbeat", json=HEARTBEAT, headers=agent_headers)
        resp = await client.post(f"/api/v1/agent-tokens/{record.id}/approve", headers=other_headers)
        assert resp.status_code == 404

    async def test_reject_resets_binding(self, client: AsyncClient, auth_headers, agent_headers, issued_token):
        _, record = issued_token
        await client.post("/api/v1/agent/heartbeat", json=HEARTBEAT, headers=agent_headers)

        resp = await client.post(f"/api/v1/agent-tokens/{record.id}/reject", headers=auth_headers)
        assert resp.status_code == 200

        [listed] = (await client.get("/api/v1/agent-tokens", headers=auth_headers)).json()
        assert listed["agentInstallationId"] is None
        assert listed["approved"] is False
        assert listed["revokedAt"] is None

        # 新的 Agent 可以重新认领该令牌
        other_agent = {**HEARTBEAT, "installationId": "install-b", "hostname": "laptop"}
        resp = await client.post("/api/v1/agent/heartbeat", json=other_agent, headers=agent_headers)
        assert resp.json()["status"] == "pending_approval"

    async def test_reject_foreign_token(self, client: AsyncClient, other_headers, issued_token):
        _, record = issued_token
        resp = await client.post(f"/api/v1/agent-tokens/{record.id}/reject", headers=other_headers)
        assert resp.status_code == 404
