"""
用户模型 (User Model)

仪表盘用户表。每个用户拥有自己的 Agent 令牌和设备集合，彼此完全隔离。

Dashboard user table. Each user exclusively owns their agent tokens and devices.
"""
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class User(Base):
    """用户表 (User Table)"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)  # 用户邮箱（登录名） (User Email, Login Name)
    name: Mapped[str] = mapped_column(String(100), nullable=False)  # 用户姓名 (User Name)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)  # 哈希后的密码 (Hashed Password)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # 账户是否激活 (Account Active Status)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 账户创建时间 (Account Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 账户更新时间 (Account Update Time)
