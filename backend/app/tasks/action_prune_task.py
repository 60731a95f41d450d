"""
动作剪枝定时任务 (Action Prune Scheduled Task)

每日凌晨 2:00 执行一次动作剪枝，删除超过保留期的已结束动作。
调度器由应用生命周期显式创建、启动和停止，不持有模块级全局状态。

Runs the action prune daily at 02:00. The scheduler is constructed, started and
stopped explicitly by the application lifespan.
"""
import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import ConflictError
from app.services.action_pruner import ActionPruner, PruneResult

logger = logging.getLogger(__name__)

RUN_AT = time(2, 0)
ERROR_RETRY_SECONDS = 3600


def seconds_until(run_at: time, now: Optional[datetime] = None) -> float:
    """距下一次 run_at 的秒数；今天已过则取明天。"""
    now = now or datetime.now()
    target = datetime.combine(now.date(), run_at)
    if now >= target:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class ActionPruneScheduler:
    """每日动作剪枝调度器"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], redis_factory, run_at: time = RUN_AT):
        self._session_factory = session_factory
        self._redis_factory = redis_factory
        self._run_at = run_at
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="action-prune-scheduler")
        logger.info("Action prune scheduler started")

    async def stop(self, timeout: float = 30) -> None:
        """优雅停止，等待当前剪枝完成，超时则取消。"""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Action prune scheduler did not stop within {timeout} seconds")
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Action prune scheduler stopped")

    async def _sleep(self, seconds: float) -> bool:
        """等待指定秒数，收到停止信号返回 True。"""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            wait_seconds = seconds_until(self._run_at)
            logger.info(f"Next action prune in {wait_seconds:.0f} seconds")
            if await self._sleep(wait_seconds):
                break
            try:
                await self.run_once()
            except ConflictError:
                logger.info("Action prune skipped, another run holds the lock")
            except Exception as e:
                logger.error(f"Action prune task error: {e}", exc_info=True)
                if await self._sleep(ERROR_RETRY_SECONDS):
                    break

    async def run_once(self, dry_run: bool = False) -> PruneResult:
        """立即执行一次剪枝，使用配置的保留天数和批次大小。"""
        start = datetime.now()
        redis_client = await self._redis_factory()
        async with self._session_factory() as db:
            result = await ActionPruner(db, redis_client).prune(
                retention_days=settings.action_retention_days,
                batch_size=settings.action_prune_batch_size,
                dry_run=dry_run,
            )
        duration = (datetime.now() - start).total_seconds()
        logger.info(f"Scheduled action prune finished in {duration:.2f}s: {result.to_dict()}")
        return result
