"""
Agent 令牌模型 (Agent Token Model)

一张表同时承载两层状态：
- 凭证本身：所属用户、SHA-256 哈希、展示前缀、使用/吊销时间
- Agent 绑定：首次连接的 Agent 安装 ID 及其自报的硬件地址、主机名、网络地址，
  以及仪表盘用户是否已批准该绑定

One table carrying both the bearer credential and the agent binding layered on it.
The binding columns are mutated only by the agent identity service.
"""
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, false, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class AgentToken(Base):
    """
    Agent 令牌表 (Agent Token Table)

    不变量 (Invariants):
      - token_hash 全局唯一，明文令牌从不落库
      - revoked_at 一旦写入永不清空
      - approved 为 True 时 agent_installation_id 必须非空
    """
    __tablename__ = "agent_tokens"
    __table_args__ = (
        CheckConstraint(
            "approved = false OR agent_installation_id IS NOT NULL",
            name="ck_agent_tokens_approved_requires_binding",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )  # 所属用户 ID (Owner User ID)
    name: Mapped[str] = mapped_column(String(100), nullable=False)  # 令牌名称 (Token Name)
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)  # SHA-256 哈希值 (SHA-256 Hash)
    token_prefix: Mapped[str] = mapped_column(String(8), nullable=False)  # 令牌前缀，用于界面展示 (Token Prefix for Display)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # 最后使用时间，仅供参考 (Last Used Time, advisory)
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )  # 吊销时间 (Revocation Time)

    # Agent 绑定 (Agent Binding)
    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())  # 是否已批准 (Approved)
    agent_installation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)  # Agent 安装 ID (Installation ID)
    agent_hardware_address: Mapped[str | None] = mapped_column(String(17), nullable=True)  # MAC 地址 (Hardware Address)
    agent_hostname: Mapped[str | None] = mapped_column(String(255), nullable=True)  # 主机名 (Hostname)
    agent_network_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IP 地址（支持 IPv6） (Network Address)
    first_connected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 首次连接时间 (First Connected)
    last_heartbeat_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 最后心跳时间 (Last Heartbeat)

    @property
    def is_bound(self) -> bool:
        return self.agent_installation_id is not None
