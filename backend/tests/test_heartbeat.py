"""心跳与在线判定测试。"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError
from app.services.heartbeat import is_online, last_seen_age_seconds, record_heartbeat

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestOnline:
    def test_never_seen_is_offline(self):
        assert is_online(None, NOW) is False
        assert last_seen_age_seconds(None, NOW) is None

    def test_four_minutes_is_online(self):
        assert is_online(NOW - timedelta(minutes=4), NOW) is True

    def test_six_minutes_is_offline(self):
        assert is_online(NOW - timedelta(minutes=6), NOW) is False

    def test_threshold_is_exclusive(self):
        assert is_online(NOW - timedelta(minutes=5), NOW) is False

    def test_naive_timestamp_treated_as_utc(self):
        naive = (NOW - timedelta(seconds=30)).replace(tzinfo=None)
        assert is_online(naive, NOW) is True
        assert last_seen_age_seconds(naive, NOW) == 30

    def test_future_timestamp_age_is_zero(self):
        assert last_seen_age_seconds(NOW + timedelta(seconds=10), NOW) == 0


class TestRecordHeartbeat:
    async def test_sets_last_seen_keeps_updated_at(self, db_session, host):
        updated_at = host.updated_at
        fresh = await record_heartbeat(db_session, host.id)
        assert fresh.last_seen_at is not None
        assert fresh.updated_at == updated_at
        assert is_online(fresh.last_seen_at)

    async def test_repeated_heartbeats_advance(self, db_session, host):
        first = (await record_heartbeat(db_session, host.id)).last_seen_at
        second = (await record_heartbeat(db_session, host.id)).last_seen_at
        assert second >= first

    async def test_unknown_host(self, db_session):
        with pytest.raises(NotFoundError):
            await record_heartbeat(db_session, 4242)
