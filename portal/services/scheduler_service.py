"""
定期ジョブスケジューラーサービス

APSchedulerを使用してイベントループ上で定期処理を実行する
- ハートビート: 30秒ごと（無通信の接続断を端末側で検出するため）
- 期限切れ通知の削除: 5分ごと

ジョブはコルーチンとして登録し、イベントループ上で実行する（スレッドプールを使わない）
そのためストア・接続集合にロックは不要
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from portal.services.broadcast_hub import BroadcastHub
from portal.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)


async def run_heartbeat_job(hub: BroadcastHub) -> None:
    """ハートビート送信ジョブ"""
    delivered = hub.send_heartbeat()
    logger.debug(f"💓 ハートビート送信: {delivered}クライアント")


async def run_cleanup_job(store: NotificationStore) -> None:
    """期限切れ通知の削除ジョブ"""
    try:
        removed = store.sweep_expired()
        if removed:
            logger.info(f"✅ 通知クリーンアップ完了: 削除={removed}, 残り={len(store)}")
    except Exception as e:
        logger.error(f"❌ 通知クリーンアップエラー: {str(e)}")


def create_scheduler(
    hub: BroadcastHub,
    store: NotificationStore,
    heartbeat_seconds: int = 30,
    cleanup_seconds: int = 300,
) -> AsyncIOScheduler:
    """ジョブを登録したスケジューラーを作成（未開始）"""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_heartbeat_job,
        trigger=IntervalTrigger(seconds=heartbeat_seconds),
        args=[hub],
        id="heartbeat",
        name="ハートビート",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        run_cleanup_job,
        trigger=IntervalTrigger(seconds=cleanup_seconds),
        args=[store],
        id="notification_cleanup",
        name="期限切れ通知の削除",
        replace_existing=True,
        max_instances=1,
    )

    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """スケジューラーを開始（イベントループ上で呼び出すこと）"""
    if scheduler.running:
        logger.warning("スケジューラーは既に実行中です")
        return

    scheduler.start()
    logger.info("📅 スケジューラー開始")
    for job in scheduler.get_jobs():
        logger.info(f"   - {job.name}: {job.trigger}")


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """スケジューラーを停止"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("📅 スケジューラー停止")


def get_scheduler_status(scheduler: AsyncIOScheduler) -> dict:
    """スケジューラーの状態を取得"""
    jobs = []
    if scheduler.running:
        for job in scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }
