"""门户客户端测试：请求格式与消息截断。"""
import json

import httpx

from labportal_agent.config import AgentConfig, PortalConfig
from labportal_agent.portal_client import PortalClient, cap_length, compose_message


def _client(handler) -> PortalClient:
    config = AgentConfig(host_id="lab-01", portal=PortalConfig(url="http://portal", token="lpa_secret"))
    return PortalClient(config, transport=httpx.MockTransport(handler))


class TestComposeMessage:
    def test_cap_length(self):
        assert cap_length("abc", 5) == "abc"
        assert cap_length("abcdefgh", 5) == "ab..."

    def test_combines_message_and_stderr(self):
        assert compose_message("failed", "  boom \n") == "failed\nboom"

    def test_empty(self):
        assert compose_message(None, "   ") is None

    def test_total_is_capped(self):
        text = compose_message("m" * 900, "e" * 900)
        assert len(text) <= 1000
        assert text.startswith("m" * 497 + "...")


class TestRequests:
    async def test_heartbeat_sends_bearer(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers["authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"status": "ok"})

        client = _client(handler)
        assert await client.heartbeat() == {"status": "ok"}
        await client.close()
        assert seen == {"auth": "Bearer lpa_secret", "path": "/api/v1/agent/heartbeat"}

    async def test_queue_passes_max(self):
        def handler(request: httpx.Request):
            assert request.url.params["max"] == "1"
            return httpx.Response(200, json=[{"id": 3}])

        client = _client(handler)
        assert await client.get_queued_actions(1) == [{"id": 3}]
        await client.close()

    async def test_report_payload(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={})

        client = _client(handler)
        await client.report(3, "running")
        await client.report(3, "failed", 2, "failed", "stderr text")
        await client.close()
        assert bodies[0] == {"action_id": 3, "status": "running"}
        assert bodies[1] == {"action_id": 3, "status": "failed", "exit_code": 2, "message": "failed\nstderr text"}

    async def test_http_error_raises(self):
        client = _client(lambda request: httpx.Response(401, json={"error": "unauthorized"}))
        try:
            await client.heartbeat()
        except httpx.HTTPStatusError as e:
            assert e.response.status_code == 401
        else:
            raise AssertionError("expected HTTPStatusError")
        finally:
            await client.close()
