"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型：用户、Agent 令牌（含绑定状态）、设备及其网络状态。

Centrally exports all SQLAlchemy ORM models.
"""
from app.models.user import User
from app.models.agent_token import AgentToken
from app.models.device import Device
from app.models.network_state import NetworkState

__all__ = ["User", "AgentToken", "Device", "NetworkState"]
