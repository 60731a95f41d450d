"""受管服务路由测试：注册校验、权限标志、删除保护。"""
from httpx import AsyncClient

from app.models.action import Action
from app.routers import managed_services
from app.services.dispatcher import ActionDispatcher


def _payload(host_id: int, unit_name: str = "redis.service", **extra) -> dict:
    return {"host_id": host_id, "unit_name": unit_name, "display_name": "Redis", **extra}


class TestCreateService:
    async def test_create_defaults(self, client: AsyncClient, auth_headers, host):
        resp = await client.post("/api/v1/services", headers=auth_headers, json=_payload(host.id))
        assert resp.status_code == 201
        data = resp.json()
        assert data["unit_name"] == "redis.service"
        assert data["allow_start"] is False
        assert data["allow_stop"] is False
        assert data["allow_restart"] is True

    async def test_invalid_unit_name(self, client: AsyncClient, auth_headers, host):
        for unit in ("redis", "redis.timer", "re dis.service", "../etc.service", "nginx.service;rm"):
            resp = await client.post("/api/v1/services", headers=auth_headers, json=_payload(host.id, unit))
            assert resp.status_code == 400, unit

    async def test_unknown_host(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/v1/services", headers=auth_headers, json=_payload(9999))
        assert resp.status_code == 404

    async def test_duplicate_unit_on_host(self, client: AsyncClient, auth_headers, host, service):
        resp = await client.post("/api/v1/services", headers=auth_headers, json=_payload(host.id, service.unit_name))
        assert resp.status_code == 409

    async def test_concurrent_duplicate_hits_unique_constraint(self, client: AsyncClient, auth_headers, host, service, monkeypatch):
        """两个注册请求都通过了查重，后提交的一方由唯一约束拒绝。"""
        async def not_registered(*args):
            return False

        monkeypatch.setattr(managed_services, "_unit_registered", not_registered)
        payload = _payload(host.id, service.unit_name)
        resp = await client.post("/api/v1/services", headers=auth_headers, json=payload)
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    async def test_same_unit_on_other_host(self, client: AsyncClient, auth_headers, service, host_factory):
        other, _ = await host_factory("lab-02")
        resp = await client.post("/api/v1/services", headers=auth_headers, json=_payload(other.id, service.unit_name))
        assert resp.status_code == 201


class TestListAndUpdate:
    async def test_list_filtered_by_host(self, client: AsyncClient, auth_headers, host, service, host_factory, service_factory):
        other, _ = await host_factory("lab-02")
        await service_factory(other, "postgresql.service")
        resp = await client.get(f"/api/v1/services?host_id={host.id}", headers=auth_headers)
        data = resp.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == service.id

    async def test_update_flags(self, client: AsyncClient, auth_headers, service):
        resp = await client.put(f"/api/v1/services/{service.id}", headers=auth_headers, json={"allow_restart": False})
        assert resp.status_code == 200
        data = resp.json()
        assert data["allow_restart"] is False
        assert data["allow_start"] is True

    async def test_flag_change_applies_to_next_enqueue(self, client: AsyncClient, auth_headers, host, service):
        await client.put(f"/api/v1/services/{service.id}", headers=auth_headers, json={"allow_stop": False})
        resp = await client.post("/api/v1/actions", headers=auth_headers, json={
            "host_id": host.id, "service_id": service.id, "kind": "stop",
        })
        assert resp.status_code == 403


class TestDeleteService:
    async def test_delete_refused_with_queued_action(self, client: AsyncClient, auth_headers, host, service, db_session):
        await ActionDispatcher(db_session).enqueue(host.id, service.id, "start", "admin@local")
        resp = await client.delete(f"/api/v1/services/{service.id}", headers=auth_headers)
        assert resp.status_code == 409

    async def test_delete_with_finished_history(self, client: AsyncClient, auth_headers, host, service, db_session):
        dispatcher = ActionDispatcher(db_session)
        action = await dispatcher.enqueue(host.id, service.id, "start", "admin@local")
        await dispatcher.pull_queued(host.id, 1)
        await dispatcher.report_result(action.id, host.id, "failed", 1, "unit masked")

        resp = await client.delete(f"/api/v1/services/{service.id}", headers=auth_headers)
        assert resp.status_code == 204
        assert await db_session.get(Action, action.id, populate_existing=True) is None
