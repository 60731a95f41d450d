"""
动作保留策略服务 (Action Retention Service)

定期删除超过保留期的已结束动作（succeeded/failed），防止动作表无限增长。
按 id 分批删除，每批一个短事务；某批失败时回滚该批、记录错误，继续下一批，
已提交的批次保持删除。通过 Redis 锁保证同一时间只有一个剪枝在运行。

Deletes finished actions older than the retention window in id-ordered batches, one
short transaction per batch. A failed batch is rolled back and recorded while the sweep
continues. A Redis lock keeps the pruner from running concurrently with itself.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, ValidationError
from app.core.redis import acquire_lock, release_lock
from app.models.action import TERMINAL_STATUSES, Action

logger = logging.getLogger(__name__)

# 默认保留天数和批次大小
DEFAULT_RETENTION_DAYS = 90
BATCH_SIZE = 1000

PRUNE_LOCK_KEY = "lock:action-prune"
PRUNE_LOCK_TTL = 3600  # 秒


@dataclass
class PruneResult:
    """剪枝结果统计"""
    total_actions: int = 0
    actions_to_delete: int = 0
    actions_deleted: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class ActionPruner:
    """动作剪枝服务类"""

    def __init__(self, db: AsyncSession, redis_client: redis.Redis | None = None):
        self.db = db
        self.redis = redis_client

    def _candidate_filter(self, cutoff: datetime):
        return (Action.status.in_(TERMINAL_STATUSES), Action.requested_at < cutoff)

    async def prune(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        batch_size: int = BATCH_SIZE,
        dry_run: bool = False,
    ) -> PruneResult:
        """
        执行剪枝

        Args:
            retention_days: 保留天数，早于此的已结束动作会被删除
            batch_size: 每批删除数量
            dry_run: 只统计不删除

        Raises:
            ConflictError: 已有剪枝在运行
        """
        if retention_days < 1:
            raise ValidationError("retention_days 必须大于 0 (retention_days must be positive)")
        if batch_size < 1:
            raise ValidationError("batch_size 必须大于 0 (batch_size must be positive)")

        lock_token = await self._acquire()
        try:
            return await self._prune(retention_days, batch_size, dry_run)
        finally:
            if lock_token is not None:
                await self._release(lock_token)

    async def _acquire(self) -> str | None:
        """获取剪枝锁，返回持有者令牌；Redis 不可用时降级为无锁运行。"""
        if self.redis is None:
            return None
        try:
            token = await acquire_lock(self.redis, PRUNE_LOCK_KEY, PRUNE_LOCK_TTL)
        except RedisError as e:
            logger.warning(f"Prune lock unavailable, continuing without it: {e}")
            return None
        if token is None:
            raise ConflictError("剪枝任务已在运行 (Action prune already running)")
        return token

    async def _release(self, token: str) -> None:
        # 已提交的批次不受影响，释放失败只记录，锁会按 TTL 过期
        try:
            if not await release_lock(self.redis, PRUNE_LOCK_KEY, token):
                logger.warning("Prune lock expired or was taken over before release")
        except RedisError as e:
            logger.warning(f"Failed to release prune lock, it will expire after {PRUNE_LOCK_TTL}s: {e}")

    async def _prune(self, retention_days: int, batch_size: int, dry_run: bool) -> PruneResult:
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        result = PruneResult(dry_run=dry_run)

        result.total_actions = (await self.db.execute(select(func.count(Action.id)))).scalar() or 0
        result.actions_to_delete = (
            await self.db.execute(select(func.count(Action.id)).where(*self._candidate_filter(cutoff)))
        ).scalar() or 0

        if dry_run or result.actions_to_delete == 0:
            logger.info(
                f"Action prune ({'dry run' if dry_run else 'nothing to do'}): "
                f"{result.actions_to_delete}/{result.total_actions} older than {retention_days} days"
            )
            return result

        last_id = 0
        while True:
            # 按 id 游标遍历，失败的批次不会被反复选中
            batch_ids = list(
                (
                    await self.db.execute(
                        select(Action.id)
                        .where(*self._candidate_filter(cutoff), Action.id > last_id)
                        .order_by(Action.id)
                        .limit(batch_size)
                    )
                ).scalars().all()
            )
            if not batch_ids:
                break
            last_id = batch_ids[-1]

            try:
                deleted = await self.db.execute(
                    delete(Action)
                    .where(Action.id.in_(batch_ids), Action.status.in_(TERMINAL_STATUSES))
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
                result.actions_deleted += deleted.rowcount
            except SQLAlchemyError as e:
                await self.db.rollback()
                message = f"Batch {batch_ids[0]}-{batch_ids[-1]} failed: {e}"
                logger.error(message)
                result.errors.append(message)

            if len(batch_ids) < batch_size:
                break

        logger.info(
            f"Action prune completed. Deleted {result.actions_deleted}/{result.actions_to_delete} "
            f"actions older than {retention_days} days, errors: {len(result.errors)}"
        )
        return result

    async def stats(self) -> dict:
        """剪枝统计：总数、早于 7/30/90 天的数量、最早和最新的请求时间。"""
        now = datetime.now(timezone.utc)

        async def _older_than(days: int) -> int:
            cutoff = now - timedelta(days=days)
            return (
                await self.db.execute(select(func.count(Action.id)).where(Action.requested_at < cutoff))
            ).scalar() or 0

        total = (await self.db.execute(select(func.count(Action.id)))).scalar() or 0
        oldest, newest = (
            await self.db.execute(select(func.min(Action.requested_at), func.max(Action.requested_at)))
        ).one()

        return {
            "total_actions": total,
            "older_than_7_days": await _older_than(7),
            "older_than_30_days": await _older_than(30),
            "older_than_90_days": await _older_than(90),
            "oldest_requested_at": oldest,
            "newest_requested_at": newest,
        }
