"""
控制平面运维路由 (Control Plane Operations Router)

功能说明：诊断概览和动作剪枝
核心职责：
  - 汇总队列积压、失败数量、主机在线状态
  - 查询剪枝统计
  - 触发剪枝（管理员身份 + x-cron-secret 双重校验）
API端点：GET /control/diagnostics, GET /control/prune, POST /control/prune
"""
import logging

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_admin_principal, require_cron_secret
from app.core.principal import AdminPrincipal
from app.core.redis import get_redis
from app.schemas.control import DiagnosticsResponse, PruneRequest, PruneResultResponse, PruneStatsResponse
from app.services.action_pruner import ActionPruner
from app.services.diagnostics import collect_diagnostics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/control", tags=["control"])


@router.get("/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """控制平面诊断概览。"""
    return await collect_diagnostics(db)


@router.get("/prune", response_model=PruneStatsResponse)
async def prune_stats(
    admin: AdminPrincipal = Depends(get_admin_principal),
    db: AsyncSession = Depends(get_db),
):
    """剪枝统计。"""
    return await ActionPruner(db).stats()


@router.post("/prune", response_model=PruneResultResponse)
async def prune_actions(
    body: PruneRequest = Body(default_factory=PruneRequest),
    admin: AdminPrincipal = Depends(require_cron_secret),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """触发一次剪枝，未提供的参数使用配置默认值。"""
    retention_days = body.retention_days or settings.action_retention_days
    batch_size = body.batch_size or settings.action_prune_batch_size
    logger.info(
        "Action prune requested by %s (retention_days=%s, batch_size=%s, dry_run=%s)",
        admin.email, retention_days, batch_size, body.dry_run,
    )
    result = await ActionPruner(db, redis).prune(
        retention_days=retention_days,
        batch_size=batch_size,
        dry_run=body.dry_run,
    )
    return result.to_dict()
