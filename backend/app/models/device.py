"""
设备模型 (Device Model)

定义 Agent 在局域网内发现并上报的设备表结构。
设备按 MAC 地址与上一轮上报结果对齐；没有 MAC 的设备无法可靠关联，同步时不会被触碰。

Devices discovered and reported by an agent. Matching across report cycles is by
hardware (MAC) address; devices without one are never matched or deleted by sync.
"""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Device(Base):
    """
    设备表 (Device Table)

    同一用户下非空 hardware_address 至多出现一次，由同步逻辑保证而非数据库约束。
    """
    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )  # 所属用户 ID (Owner User ID)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # 设备名称 (Device Name)
    hardware_address: Mapped[str | None] = mapped_column(String(17), nullable=True, index=True)  # MAC 地址 (Hardware Address)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="offline")  # online/offline/away
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 最后上报时间 (Last Seen Time)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
