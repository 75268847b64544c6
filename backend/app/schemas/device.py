"""
设备请求/响应模型

定义 Agent 设备注册、部分更新、全量同步以及仪表盘设备查询的数据结构。
线上字段使用 camelCase（hardwareAddress、networkAddress），Python 内部使用 snake_case。
"""
import ipaddress
import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

DeviceStatus = Literal["online", "offline", "away"]

# 六组冒号分隔的十六进制字节，例如 AA:BB:CC:DD:EE:FF
_MAC_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")

CAMEL_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


def normalize_hardware_address(value: str | None) -> str | None:
    """校验并统一为大写 MAC 地址 (Validate and upper-case a MAC address)"""
    if value is None:
        return None
    value = value.strip()
    if not _MAC_RE.match(value):
        raise ValueError("must be six colon-separated hexadecimal octets")
    return value.upper()


def normalize_network_address(value: str | None) -> str | None:
    """校验 IPv4/IPv6 字面量 (Validate an IPv4 or IPv6 literal)"""
    if value is None:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        raise ValueError("must be a valid IPv4 or IPv6 address") from None


class _AddressFields(BaseModel):
    """硬件地址与网络地址的公共校验。"""
    model_config = CAMEL_CONFIG

    @field_validator("hardware_address", mode="before", check_fields=False)
    @classmethod
    def _check_hardware_address(cls, v):
        if v is None or v == "":
            return None
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return normalize_hardware_address(v)

    @field_validator("network_address", mode="before", check_fields=False)
    @classmethod
    def _check_network_address(cls, v):
        if v is None or v == "":
            return None
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return normalize_network_address(v)


class DeviceRegister(_AddressFields):
    """单设备注册请求体，status 缺省为 online。"""
    name: str = Field(min_length=1, max_length=255)
    hardware_address: str | None = None
    status: DeviceStatus | None = None
    network_address: str | None = None


class DeviceSyncEntry(_AddressFields):
    """全量同步中的一条设备记录。"""
    name: str = Field(min_length=1, max_length=255)
    hardware_address: str | None = None
    status: DeviceStatus
    network_address: str | None = None


class DeviceUpdate(_AddressFields):
    """部分更新请求体：只有请求中出现的字段才会被写入。"""
    name: str | None = Field(default=None, min_length=1, max_length=255)
    status: DeviceStatus | None = None
    network_address: str | None = None


class DeviceSyncRequest(BaseModel):
    """全量同步请求体。"""
    devices: list[DeviceSyncEntry]


class DeviceSyncResponse(BaseModel):
    """全量同步结果计数。"""
    created: int
    updated: int
    deleted: int


class DeviceResponse(BaseModel):
    """设备响应体。"""
    id: int
    owner_id: int
    name: str
    hardware_address: str | None = None
    status: str
    last_seen_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {**CAMEL_CONFIG, "from_attributes": True}


class NetworkStateResponse(BaseModel):
    """设备网络状态响应体。"""
    device_id: int
    network_address: str | None = None
    is_authoritative: bool
    updated_at: datetime | None = None

    model_config = {**CAMEL_CONFIG, "from_attributes": True}


class MessageResponse(BaseModel):
    message: str
