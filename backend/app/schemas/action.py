"""
控制动作请求/响应模型

定义管理员创建动作、Agent 拉取队列和上报结果等 API 的数据结构。
上报请求同时接受 snake_case 和 camelCase 字段名。
"""
from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from app.models.action import MESSAGE_MAX_LENGTH

ActionKind = Literal["start", "stop", "restart", "status"]
ReportStatus = Literal["running", "succeeded", "failed"]


class ActionCreate(BaseModel):
    """创建控制动作请求体。kind 在分发器中校验，不在此处强制枚举。"""
    host_id: int
    service_id: int
    kind: str
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=128)


class ActionResponse(BaseModel):
    """控制动作响应体。"""
    id: int
    host_id: int
    service_id: int
    kind: str
    status: str
    requested_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    exit_code: int | None = None
    message: str | None = None
    requested_by: str
    idempotency_key: str | None = None

    model_config = {"from_attributes": True}


class QueuedService(BaseModel):
    """队列条目中嵌入的服务信息。"""
    id: int
    unit_name: str
    display_name: str

    model_config = {"from_attributes": True}


class QueuedAction(BaseModel):
    """Agent 拉取到的动作，已被领取为 running。"""
    id: int
    host_id: int
    kind: str
    status: str
    requested_at: datetime
    started_at: datetime | None = None
    service: QueuedService


class ActionReport(BaseModel):
    """Agent 上报结果请求体。"""
    action_id: int = Field(validation_alias=AliasChoices("action_id", "actionId"))
    status: ReportStatus
    exit_code: int | None = Field(default=None, validation_alias=AliasChoices("exit_code", "exitCode"))
    message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH)
