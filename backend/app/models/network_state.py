"""
设备网络状态模型 (Device Network State Model)

记录每台设备最近一次观测到的网络地址，与设备一对一。
只在同步/注册设备时作为副产物写入，从不单独创建；设备删除时一并删除（外键 ON DELETE CASCADE，
服务层同时显式删除以兼容未开启外键约束的 SQLite）。
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class NetworkState(Base):
    """设备网络状态表 (Device Network State Table)"""
    __tablename__ = "device_network_states"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("devices.id", ondelete="CASCADE"), unique=True, nullable=False
    )  # 所属设备，唯一 (Owning device, unique)
    network_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv4/IPv6 地址
    # False 表示仅为最近一次观测值 (False means last-known, not authoritative)
    is_authoritative: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
