"""
Agent 主循环。

每个周期：发送心跳 → 拉取至多一个动作 → 上报 running → 执行 → 上报最终状态。
同一时间只执行一个动作；上报或网络失败只记录日志，下一个周期继续。
"""
import asyncio
import logging
from typing import Optional

from labportal_agent.config import AgentConfig
from labportal_agent.executor import ActionExecutor
from labportal_agent.portal_client import PortalClient

logger = logging.getLogger(__name__)


class Agent:
    def __init__(
        self,
        config: AgentConfig,
        client: Optional[PortalClient] = None,
        executor: Optional[ActionExecutor] = None,
    ):
        self.config = config
        self.client = client or PortalClient(config)
        self.executor = executor or ActionExecutor(config.executor)
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        logger.info("Agent stopping...")
        self._stop_event.set()

    async def run(self) -> None:
        """运行轮询循环，直到 stop() 被调用。"""
        logger.info(f"Agent started for host {self.config.host_id}, polling every {self.config.poll_interval:g}s")
        try:
            while not self._stop_event.is_set():
                await self.run_cycle()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.client.close()
        logger.info("Agent stopped")

    async def run_cycle(self) -> None:
        """执行一个轮询周期。"""
        try:
            await self.client.heartbeat()
        except Exception as e:
            logger.warning(f"Heartbeat failed: {e}")

        try:
            actions = await self.client.get_queued_actions(1)
        except Exception as e:
            logger.warning(f"Failed to check for actions: {e}")
            return

        if actions:
            await self.handle_action(actions[0])

    async def handle_action(self, action: dict) -> None:
        action_id = action.get("id")
        kind = action.get("kind", "")
        unit_name = (action.get("service") or {}).get("unit_name", "")
        logger.info(f"Executing action {action_id}: {kind} {unit_name}")

        try:
            await self.client.report(action_id, "running")
        except Exception as e:
            logger.warning(f"Failed to acknowledge action {action_id}: {e}")

        try:
            result = await self.executor.execute(kind, unit_name)
        except Exception as e:
            logger.error(f"Action {action_id} rejected or crashed: {e}")
            await self._report(action_id, "failed", None, f"Execution error: {e}")
            return

        if result.is_timeout:
            logger.warning(f"Action {action_id} timed out")
            await self._report(action_id, "failed", None, "timeout", result.stderr)
            return

        status = "succeeded" if result.success else "failed"
        await self._report(action_id, status, result.exit_code, result.message, result.stderr)
        logger.info(f"Action {action_id} completed with status: {status} ({result.duration_ms} ms)")

    async def _report(self, action_id, status, exit_code=None, message=None, stderr=None) -> None:
        try:
            await self.client.report(action_id, status, exit_code, message, stderr)
        except Exception as e:
            # 丢失的上报不重试，动作会停留在 running，可在诊断页面看到
            logger.error(f"Failed to report action {action_id} as {status}: {e}")
