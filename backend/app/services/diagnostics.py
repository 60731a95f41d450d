"""
控制平面诊断服务 (Control Plane Diagnostics)

汇总队列积压、近 24 小时失败、主机在线状态和最近的失败动作，
用于运维排查卡在 running 的动作或离线主机。
"""
import os
import platform
import sys
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.action import STATUS_FAILED, STATUS_QUEUED, STATUS_RUNNING, Action
from app.models.host import Host
from app.services.heartbeat import is_online, last_seen_age_seconds

RECENT_FAILURES_LIMIT = 10

_PROCESS_STARTED = time.monotonic()


async def _count(db: AsyncSession, *conditions) -> int:
    return (await db.execute(select(func.count(Action.id)).where(*conditions))).scalar() or 0


async def _group_counts(db: AsyncSession, column, since: datetime) -> dict[str, int]:
    rows = await db.execute(
        select(column, func.count(Action.id)).where(Action.requested_at >= since).group_by(column)
    )
    return {key: count for key, count in rows.all()}


async def collect_diagnostics(db: AsyncSession) -> dict:
    """构造诊断概览。"""
    now = datetime.now(timezone.utc)
    since = now - timedelta(hours=24)

    hosts = (await db.execute(select(Host).order_by(Host.name))).scalars().all()
    host_items = [
        {
            "id": h.id,
            "name": h.name,
            "is_online": is_online(h.last_seen_at, now),
            "last_seen_at": h.last_seen_at,
            "last_seen_age_seconds": last_seen_age_seconds(h.last_seen_at, now),
        }
        for h in hosts
    ]

    failures = (
        await db.execute(
            select(Action)
            .where(Action.status == STATUS_FAILED)
            .order_by(Action.requested_at.desc(), Action.id.desc())
            .limit(RECENT_FAILURES_LIMIT)
        )
    ).scalars().all()

    return {
        "server_time": now,
        "control_plane_enabled": settings.enable_control_plane,
        "queued_count": await _count(db, Action.status == STATUS_QUEUED),
        "running_count": await _count(db, Action.status == STATUS_RUNNING),
        "failed_last_24h": await _count(db, Action.status == STATUS_FAILED, Action.requested_at >= since),
        "hosts": host_items,
        "recent_failures": [
            {
                "id": a.id,
                "host_id": a.host_id,
                "service_id": a.service_id,
                "kind": a.kind,
                "exit_code": a.exit_code,
                "message": a.message,
                "requested_at": a.requested_at,
                "finished_at": a.finished_at,
            }
            for a in failures
        ],
        "status_last_24h": await _group_counts(db, Action.status, since),
        "kind_last_24h": await _group_counts(db, Action.kind, since),
        "system": {
            "python_version": sys.version.split()[0],
            "platform": platform.platform(),
            "pid": os.getpid(),
            "uptime_seconds": int(time.monotonic() - _PROCESS_STARTED),
            "environment": settings.environment,
        },
    }
