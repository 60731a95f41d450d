"""门户 HTTP 客户端 - 心跳、拉取队列、上报结果。"""
import logging
from typing import Optional

import httpx

from labportal_agent.config import AgentConfig

logger = logging.getLogger(__name__)

MESSAGE_CAP = 500
STDERR_CAP = 1000
REPORT_MESSAGE_MAX = 1000


def cap_length(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def compose_message(message: Optional[str], stderr: Optional[str] = None) -> Optional[str]:
    """合并消息和 stderr，分别截断后总长度不超过服务端上限。"""
    parts = []
    if message:
        parts.append(cap_length(message, MESSAGE_CAP))
    if stderr and stderr.strip():
        parts.append(cap_length(stderr.strip(), STDERR_CAP))
    if not parts:
        return None
    return cap_length("\n".join(parts), REPORT_MESSAGE_MAX)


class PortalClient:
    def __init__(self, config: AgentConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.config.portal.token}"}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.portal.url,
                headers=self._headers(),
                timeout=self.config.portal.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def heartbeat(self) -> dict:
        client = await self._get_client()
        resp = await client.post("/api/v1/agent/heartbeat")
        resp.raise_for_status()
        logger.debug("Heartbeat sent")
        return resp.json()

    async def get_queued_actions(self, max_actions: int = 1) -> list:
        client = await self._get_client()
        resp = await client.get("/api/v1/agent/queue", params={"max": max_actions})
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, list) else []

    async def report(
        self,
        action_id: int,
        status: str,
        exit_code: Optional[int] = None,
        message: Optional[str] = None,
        stderr: Optional[str] = None,
    ) -> dict:
        payload = {"action_id": action_id, "status": status}
        if exit_code is not None:
            payload["exit_code"] = exit_code
        text = compose_message(message, stderr)
        if text:
            payload["message"] = text

        client = await self._get_client()
        resp = await client.post("/api/v1/agent/report", json=payload)
        resp.raise_for_status()
        logger.debug(f"Action {action_id} status reported: {status}")
        return resp.json()
