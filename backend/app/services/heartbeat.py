"""
心跳与在线状态模块 (Heartbeat / Liveness)

Agent 心跳只更新 last_seen_at；在线状态在读取时计算，从不入库。
最后写入者胜出，不需要额外加锁。
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.host import Host

logger = logging.getLogger(__name__)

# 在线判定阈值，默认 5 分钟
ONLINE_THRESHOLD = timedelta(seconds=settings.online_threshold_seconds)


def _as_utc(value: datetime) -> datetime:
    # SQLite 读回的时间不带时区，按 UTC 处理
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_online(last_seen_at: datetime | None, now: datetime | None = None) -> bool:
    """last_seen_at 存在且距今小于阈值时视为在线。"""
    if last_seen_at is None:
        return False
    now = _as_utc(now or datetime.now(timezone.utc))
    return now - _as_utc(last_seen_at) < ONLINE_THRESHOLD


def last_seen_age_seconds(last_seen_at: datetime | None, now: datetime | None = None) -> int | None:
    """距最后一次心跳的秒数，从未心跳返回 None。"""
    if last_seen_at is None:
        return None
    now = _as_utc(now or datetime.now(timezone.utc))
    return max(0, int((now - _as_utc(last_seen_at)).total_seconds()))


async def record_heartbeat(db: AsyncSession, host_id: int) -> Host:
    """记录主机心跳，返回更新后的主机。"""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Host)
        .where(Host.id == host_id)
        # 心跳不算元数据变更，保持 updated_at 不变
        .values(last_seen_at=now, updated_at=Host.updated_at)
    )
    if result.rowcount == 0:
        raise NotFoundError(f"主机不存在 (Host not found): {host_id}")
    await db.commit()

    host = (
        await db.execute(
            select(Host).where(Host.id == host_id).execution_options(populate_existing=True)
        )
    ).scalar_one()
    logger.debug("Heartbeat from host %s (id=%s)", host.name, host.id)
    return host
