"""
定期ジョブのテスト
"""

import asyncio

from portal.models.notification import Notification, now_ms
from portal.services.broadcast_hub import BroadcastHub, StreamConnection
from portal.services.notification_store import NotificationStore
from portal.services.scheduler_service import (
    create_scheduler,
    get_scheduler_status,
    run_cleanup_job,
    run_heartbeat_job,
)


class TestSchedulerService:
    """定期ジョブテスト"""

    def test_jobs_registered(self):
        """ハートビートと期限切れ削除のジョブを登録"""
        store = NotificationStore()
        scheduler = create_scheduler(BroadcastHub(store), store, heartbeat_seconds=30, cleanup_seconds=300)
        jobs = {job.id: job for job in scheduler.get_jobs()}
        assert set(jobs) == {"heartbeat", "notification_cleanup"}
        assert jobs["heartbeat"].trigger.interval.total_seconds() == 30
        assert jobs["notification_cleanup"].trigger.interval.total_seconds() == 300
        assert get_scheduler_status(scheduler) == {"running": False, "jobs": []}

    def test_cleanup_job(self):
        """期限切れの通知を削除"""
        store = NotificationStore()
        now = now_ms()
        store.submit(Notification(id="old", created_at=now - 10000, duration_ms=1000))
        store.submit(Notification(id="new", created_at=now, duration_ms=600000))
        asyncio.run(run_cleanup_job(store))
        assert [n.id for n in store.all()] == ["new"]

    def test_heartbeat_job(self):
        """全接続にハートビートを送信"""
        store = NotificationStore()
        hub = BroadcastHub(store)
        connection = StreamConnection()
        hub.register(connection)
        asyncio.run(run_heartbeat_job(hub))
        assert connection.pending == 2
