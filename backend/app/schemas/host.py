"""
主机相关请求/响应模型

定义主机创建、更新、列表、令牌轮换等 API 的数据结构。在线状态在读取时计算。
"""
from datetime import datetime

from pydantic import BaseModel, Field


class HostCreate(BaseModel):
    """创建主机请求体。"""
    name: str = Field(min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=255)


class HostUpdate(BaseModel):
    """更新主机请求体，只修改提供的字段。"""
    name: str | None = Field(default=None, min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=255)


class HostResponse(BaseModel):
    """主机信息响应体（不含令牌哈希）。"""
    id: int
    name: str
    address: str | None = None
    agent_token_prefix: str
    token_rotated_at: datetime | None = None
    last_seen_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    is_online: bool = False
    last_seen_age_seconds: int | None = None

    model_config = {"from_attributes": True}


class HostCreated(HostResponse):
    """创建成功时返回的响应体，包含明文令牌（仅此一次可见）。"""
    agent_token: str


class HostTokenRotated(BaseModel):
    """令牌轮换响应体，明文令牌仅此一次可见。"""
    host_id: int
    agent_token: str
    agent_token_prefix: str
    token_rotated_at: datetime
