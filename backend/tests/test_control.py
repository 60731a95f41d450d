"""控制平面运维路由测试：诊断概览、剪枝统计与触发。"""
from datetime import datetime, timedelta, timezone

from httpx import AsyncClient

from app.core.config import settings
from app.models.action import Action
from app.services.action_pruner import PRUNE_LOCK_KEY
from app.services.dispatcher import ActionDispatcher

CRON = {"x-cron-secret": "cron-secret"}


async def _old_finished(db, host, service, count: int = 2) -> None:
    for _ in range(count):
        db.add(Action(
            host_id=host.id,
            service_id=service.id,
            kind="stop",
            status="succeeded",
            requested_at=datetime.now(timezone.utc) - timedelta(days=365),
            requested_by="admin@local",
        ))
    await db.commit()


class TestDiagnostics:
    async def test_diagnostics_summary(self, client: AsyncClient, auth_headers, host, service, db_session):
        dispatcher = ActionDispatcher(db_session)
        failed = await dispatcher.enqueue(host.id, service.id, "restart", "admin@local")
        await dispatcher.pull_queued(host.id, 1)
        await dispatcher.report_result(failed.id, host.id, "failed", 1, "Job failed")
        await dispatcher.enqueue(host.id, service.id, "status", "admin@local")

        resp = await client.get("/api/v1/control/diagnostics", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["queued_count"] == 1
        assert data["running_count"] == 0
        assert data["failed_last_24h"] == 1
        assert data["recent_failures"][0]["message"] == "Job failed"
        assert data["hosts"][0]["is_online"] is False
        assert data["status_last_24h"] == {"failed": 1, "queued": 1}
        assert data["control_plane_enabled"] is True

    async def test_diagnostics_requires_admin(self, client: AsyncClient, agent_headers):
        resp = await client.get("/api/v1/control/diagnostics", headers=agent_headers)
        assert resp.status_code == 403


class TestPruneEndpoint:
    async def test_stats(self, client: AsyncClient, auth_headers, host, service, db_session):
        await _old_finished(db_session, host, service)
        resp = await client.get("/api/v1/control/prune", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["older_than_90_days"] == 2

    async def test_prune_with_secret(self, client: AsyncClient, auth_headers, host, service, db_session):
        await _old_finished(db_session, host, service)
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, **CRON}, json={"retention_days": 30})
        assert resp.status_code == 200
        data = resp.json()
        assert data["actions_deleted"] == 2
        assert data["dry_run"] is False

    async def test_prune_without_body_uses_defaults(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, **CRON})
        assert resp.status_code == 200
        assert resp.json()["actions_deleted"] == 0

    async def test_prune_dry_run(self, client: AsyncClient, auth_headers, host, service, db_session):
        await _old_finished(db_session, host, service)
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, **CRON}, json={"dry_run": True})
        data = resp.json()
        assert data["actions_to_delete"] == 2
        assert data["actions_deleted"] == 0

    async def test_wrong_secret(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, "x-cron-secret": "nope"})
        assert resp.status_code == 403

    async def test_missing_secret(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/control/prune", headers=auth_headers)
        assert resp.status_code == 403

    async def test_unset_secret_disables_endpoint(self, client: AsyncClient, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "admin_cron_secret", "")
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, **CRON})
        assert resp.status_code == 403

    async def test_secret_without_admin(self, client: AsyncClient):
        resp = await client.post("/api/v1/control/prune", headers=CRON)
        assert resp.status_code == 401

    async def test_concurrent_prune_conflict(self, client: AsyncClient, auth_headers, redis):
        await redis.set(PRUNE_LOCK_KEY, "1")
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, **CRON})
        assert resp.status_code == 409

    async def test_retention_out_of_range(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/control/prune", headers={**auth_headers, **CRON}, json={"retention_days": 0})
        assert resp.status_code == 400
