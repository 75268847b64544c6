"""
Agent 接口请求/响应模型

定义 Agent 心跳接口的数据结构。设备上报相关模型见 app.schemas.device。
"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.schemas.device import CAMEL_CONFIG, normalize_hardware_address, normalize_network_address

HeartbeatStatus = Literal["ok", "pending_approval", "device_mismatch"]


class AgentHeartbeatRequest(BaseModel):
    """Agent 心跳请求体，携带 Agent 自报身份。"""
    installation_id: str = Field(min_length=1, max_length=128)  # Agent 首次运行时生成并持久化的安装 ID
    hardware_address: str
    hostname: str = Field(min_length=1, max_length=255)
    network_address: str | None = None

    # 先去除首尾空白再做长度校验，纯空白的安装 ID 视为缺失
    model_config = {**CAMEL_CONFIG, "str_strip_whitespace": True}

    @field_validator("hardware_address")
    @classmethod
    def _check_hardware_address(cls, v: str) -> str:
        return normalize_hardware_address(v)

    @field_validator("network_address", mode="before")
    @classmethod
    def _check_network_address(cls, v):
        if v is None or v == "":
            return None
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return normalize_network_address(v)


class AgentHeartbeatResponse(BaseModel):
    """Agent 心跳响应体。"""
    status: HeartbeatStatus
    server_time: datetime
    message: str | None = None
    heartbeat_interval: int = 60  # 建议的心跳间隔（秒）

    model_config = CAMEL_CONFIG
