"""
受管服务模型 (Managed Service Model)

定义主机上可被门户控制的 systemd 单元，以及每个单元独立的 start/stop/restart 权限标志。
同一主机上的单元名唯一，不允许重复注册。

Defines the systemd units on a host that the portal may control, each with independent
start/stop/restart permission flags. A unit name is registered at most once per host.
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class ManagedService(Base):
    """
    受管服务表 (Managed Service Table)

    每条记录代表某台主机上的一个 systemd 单元，可选关联到展示卡片。
    存在未结束的动作时不能删除。
    """
    __tablename__ = "managed_services"
    __table_args__ = (
        UniqueConstraint("host_id", "unit_name", name="uq_managed_service_host_unit"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    host_id: Mapped[int] = mapped_column(Integer, ForeignKey("hosts.id"), nullable=False, index=True)  # 所属主机 ID (Host ID)
    unit_name: Mapped[str] = mapped_column(String(255), nullable=False)  # systemd 单元名，如 nginx.service (Unit Name)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)  # 展示名称 (Display Name)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)  # 描述 (Description)
    card_id: Mapped[str | None] = mapped_column(String(64), nullable=True)  # 关联展示卡片 ID (Linked Card ID)
    allow_start: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # 允许启动 (Allow Start)
    allow_stop: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # 允许停止 (Allow Stop)
    allow_restart: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)  # 允许重启 (Allow Restart)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 更新时间 (Update Time)
