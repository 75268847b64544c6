"""
Agent 令牌请求/响应模型

定义 Agent Token 创建和查询的数据结构，查询结果附带 Agent 绑定信息供用户审批。
"""
from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.device import CAMEL_CONFIG


class AgentTokenCreate(BaseModel):
    """创建 Agent Token 请求体。"""
    name: str = Field(min_length=1, max_length=100)


class AgentTokenResponse(BaseModel):
    """Agent Token 响应体（不含明文令牌与哈希）。"""
    id: int
    name: str
    token_prefix: str
    created_at: datetime | None = None
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None
    # Agent 绑定信息 (Agent binding)
    approved: bool = False
    agent_installation_id: str | None = None
    agent_hardware_address: str | None = None
    agent_hostname: str | None = None
    agent_network_address: str | None = None
    first_connected_at: datetime | None = None
    last_heartbeat_at: datetime | None = None

    model_config = {**CAMEL_CONFIG, "from_attributes": True}


class AgentTokenCreated(AgentTokenResponse):
    """创建成功时返回的响应体，包含完整令牌（仅此一次可见）。"""
    token: str
