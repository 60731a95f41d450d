"""
控制动作模型 (Control Action Model)

记录每一次服务控制请求的完整生命周期：queued → running → succeeded|failed。
服务端持有权威状态，Agent 只上报结果，从不直接修改记录。

Records the full lifecycle of each service-control request:
queued → running → succeeded|failed. The server owns the authoritative state;
agents only submit reports.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

# 动作类型 (Action Kinds)
ACTION_KINDS = ("start", "stop", "restart", "status")

# 动作状态 (Action Statuses)
STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"
ACTION_STATUSES = (STATUS_QUEUED, STATUS_RUNNING, STATUS_SUCCEEDED, STATUS_FAILED)
TERMINAL_STATUSES = (STATUS_SUCCEEDED, STATUS_FAILED)
OPEN_STATUSES = (STATUS_QUEUED, STATUS_RUNNING)

# 上报消息的最大长度 (Max Report Message Length)
MESSAGE_MAX_LENGTH = 1000


class Action(Base):
    """
    控制动作表 (Control Action Table)

    一条记录对应一次 start/stop/restart/status 请求。进入终态后除剪枝外不再变更。
    幂等键在同一主机内唯一，用于去重重复提交。

    One row per start/stop/restart/status request. Immutable once terminal except
    for pruning. The idempotency key is unique per host.
    """
    __tablename__ = "actions"
    __table_args__ = (
        UniqueConstraint("host_id", "idempotency_key", name="uq_action_host_idempotency_key"),
        Index("ix_actions_host_status_requested", "host_id", "status", "requested_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    host_id: Mapped[int] = mapped_column(Integer, ForeignKey("hosts.id"), nullable=False, index=True)  # 目标主机 ID (Target Host ID)
    service_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("managed_services.id"), nullable=False, index=True
    )  # 目标服务 ID (Target Service ID)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # 动作类型：start/stop/restart/status (Kind)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_QUEUED, index=True
    )  # 状态：queued/running/succeeded/failed (Status)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )  # 请求时间 (Requested Time)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 被 Agent 领取的时间 (Claimed Time)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)  # 完成时间 (Finished Time)
    exit_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 进程退出码 (Process Exit Code)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 结果消息 (Result Message)
    requested_by: Mapped[str] = mapped_column(String(255), nullable=False)  # 请求人 (Requested By)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)  # 幂等键 (Idempotency Key)
