"""后台任务测试：每日剪枝调度和僵死动作回收。"""
import asyncio
from datetime import datetime, time, timedelta, timezone

from app.models.action import Action
from app.services.dispatcher import STALE_MESSAGE, ActionDispatcher
from app.tasks import stale_action_task
from app.tasks.action_prune_task import ActionPruneScheduler, seconds_until
from app.tasks.stale_action_task import reclaim_stale_actions, stale_action_loop


class TestSecondsUntil:
    def test_later_today(self):
        assert seconds_until(time(2, 0), datetime(2026, 1, 1, 1, 0)) == 3600

    def test_already_passed_rolls_to_tomorrow(self):
        assert seconds_until(time(2, 0), datetime(2026, 1, 1, 3, 0)) == 23 * 3600

    def test_exactly_now_is_tomorrow(self):
        assert seconds_until(time(2, 0), datetime(2026, 1, 1, 2, 0)) == 24 * 3600


class TestPruneScheduler:
    async def test_run_once(self, session_factory, redis, db_session, host, service):
        db_session.add(Action(
            host_id=host.id,
            service_id=service.id,
            kind="restart",
            status="failed",
            requested_at=datetime.now(timezone.utc) - timedelta(days=400),
            requested_by="admin@local",
        ))
        await db_session.commit()

        async def redis_factory():
            return redis

        result = await ActionPruneScheduler(session_factory, redis_factory).run_once()
        assert result.actions_deleted == 1

    async def test_start_and_stop(self, session_factory, redis):
        async def redis_factory():
            return redis

        scheduler = ActionPruneScheduler(session_factory, redis_factory)
        scheduler.start()
        assert scheduler.running
        await scheduler.stop(timeout=5)
        assert not scheduler.running


class TestStaleReclaim:
    async def _stale_running(self, db_session, host, service) -> Action:
        dispatcher = ActionDispatcher(db_session)
        action = await dispatcher.enqueue(host.id, service.id, "restart", "admin@local")
        await dispatcher.pull_queued(host.id, 1)
        action.started_at = datetime.now(timezone.utc) - timedelta(hours=3)
        await db_session.commit()
        return action

    async def test_reclaim_marks_failed(self, db_session, session_factory, host, service, monkeypatch):
        action = await self._stale_running(db_session, host, service)
        monkeypatch.setattr(stale_action_task, "async_session", session_factory)

        assert await reclaim_stale_actions(60) == [action.id]
        await db_session.refresh(action)
        assert action.status == "failed"
        assert action.message == STALE_MESSAGE

    async def test_loop_stops_on_event(self, db_session, session_factory, host, service, monkeypatch):
        action = await self._stale_running(db_session, host, service)
        monkeypatch.setattr(stale_action_task, "async_session", session_factory)

        stop = asyncio.Event()
        task = asyncio.create_task(stale_action_loop(60, stop))
        await asyncio.sleep(0.2)
        stop.set()
        await asyncio.wait_for(task, timeout=5)

        await db_session.refresh(action)
        assert action.status == "failed"
