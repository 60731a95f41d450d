"""
受管服务请求/响应模型

定义 systemd 单元注册、权限标志更新等 API 的数据结构。
"""
from datetime import datetime

from pydantic import BaseModel, Field


class ManagedServiceCreate(BaseModel):
    """注册受管服务请求体。"""
    host_id: int
    unit_name: str = Field(min_length=1, max_length=255)
    display_name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    card_id: str | None = Field(default=None, max_length=64)
    allow_start: bool = False
    allow_stop: bool = False
    allow_restart: bool = True


class ManagedServiceUpdate(BaseModel):
    """更新受管服务请求体，单元名和所属主机不可修改。"""
    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    card_id: str | None = Field(default=None, max_length=64)
    allow_start: bool | None = None
    allow_stop: bool | None = None
    allow_restart: bool | None = None


class ManagedServiceResponse(BaseModel):
    """受管服务响应体。"""
    id: int
    host_id: int
    unit_name: str
    display_name: str
    description: str | None = None
    card_id: str | None = None
    allow_start: bool
    allow_stop: bool
    allow_restart: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
