"""
僵死动作回收任务 (Stale Running Action Reclaim)

Agent 在执行中崩溃时，动作会一直停留在 running。
配置 STALE_ACTION_TIMEOUT_MINUTES > 0 时，定期把超时未上报的动作标记为 failed。
"""
import asyncio
import logging
from datetime import timedelta

from app.core.database import async_session
from app.services.dispatcher import ActionDispatcher

logger = logging.getLogger(__name__)

CHECK_INTERVAL = 60  # 检查间隔（秒）


async def reclaim_stale_actions(timeout_minutes: int) -> list[int]:
    """执行一次回收，返回被标记为 failed 的动作 id。"""
    async with async_session() as db:
        return await ActionDispatcher(db).fail_stale_running(timedelta(minutes=timeout_minutes))


async def stale_action_loop(timeout_minutes: int, stop_event: asyncio.Event) -> None:
    """僵死动作回收后台循环。"""
    logger.info(f"Stale action reclaim started (timeout={timeout_minutes}m)")
    while not stop_event.is_set():
        try:
            await reclaim_stale_actions(timeout_minutes)
        except Exception:
            logger.exception("Error in stale action reclaim")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=CHECK_INTERVAL)
        except asyncio.TimeoutError:
            pass
    logger.info("Stale action reclaim stopped")
