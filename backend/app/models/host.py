"""
主机模型 (Host Model)

定义受管主机的表结构，记录主机名称、网络地址、Agent 令牌哈希和最后心跳时间。
每个主机对应一个 Agent，令牌只以 SHA-256 哈希形式存储，明文从不落库。
在线状态不入库，而是在读取时根据 last_seen_at 计算。

Defines the table structure for managed hosts. Each host corresponds to one agent whose
token is stored only as a SHA-256 hash. Online status is never stored; it is computed
from last_seen_at at read time.
"""
from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Host(Base):
    """
    主机表 (Host Table)

    存储受管机器的基本信息和 Agent 认证信息。令牌轮换独立于主机元数据更新。

    Managed machines and their agent credentials. Token rotation is independent
    of host metadata updates.
    """
    __tablename__ = "hosts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)  # 主机名称 (Host Name)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)  # 网络地址 (Network Address)
    agent_token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)  # SHA-256 哈希值 (SHA-256 Hash)
    agent_token_prefix: Mapped[str] = mapped_column(String(8), nullable=False)  # 令牌前缀，用于界面展示 (Token Prefix for Display)
    token_rotated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 令牌轮换时间 (Token Rotation Time)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 最后心跳时间 (Last Heartbeat Time)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 更新时间 (Update Time)
