"""
控制平面诊断与剪枝模型

定义诊断概览、剪枝统计和剪枝触发等 API 的数据结构。
"""
from datetime import datetime

from pydantic import BaseModel, Field


class HostStatusSummary(BaseModel):
    id: int
    name: str
    is_online: bool
    last_seen_at: datetime | None = None
    last_seen_age_seconds: int | None = None


class RecentFailure(BaseModel):
    id: int
    host_id: int
    service_id: int
    kind: str
    exit_code: int | None = None
    message: str | None = None
    requested_at: datetime
    finished_at: datetime | None = None


class DiagnosticsResponse(BaseModel):
    """控制平面诊断概览。"""
    server_time: datetime
    control_plane_enabled: bool
    queued_count: int
    running_count: int
    failed_last_24h: int
    hosts: list[HostStatusSummary]
    recent_failures: list[RecentFailure]
    status_last_24h: dict[str, int]
    kind_last_24h: dict[str, int]
    system: dict


class PruneRequest(BaseModel):
    """剪枝请求体，未提供的字段使用配置默认值。"""
    retention_days: int | None = Field(default=None, ge=1, le=365)
    batch_size: int | None = Field(default=None, ge=1, le=10000)
    dry_run: bool = False


class PruneResultResponse(BaseModel):
    total_actions: int
    actions_to_delete: int
    actions_deleted: int
    errors: list[str]
    dry_run: bool


class PruneStatsResponse(BaseModel):
    """剪枝统计：总数、各时间段之前的数量、最早和最新请求时间。"""
    total_actions: int
    older_than_7_days: int
    older_than_30_days: int
    older_than_90_days: int
    oldest_requested_at: datetime | None = None
    newest_requested_at: datetime | None = None
