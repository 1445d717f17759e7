"""
プッシュ購読レジストリ
クライアントIDごとにプッシュ購読情報を保持し、一斉送信と無効購読の削除を行う
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from portal.models.notification import now_ms
from portal.services.webpush_service import PushResult, WebPushService

logger = logging.getLogger(__name__)


@dataclass
class PushSubscriber:
    """登録済みの購読"""
    client_id: str
    subscription: Dict[str, Any]
    subscribed_at: int


@dataclass
class PushDeliveryReport:
    """一斉送信の結果"""
    attempted: int
    sent: int
    pruned: int


def generate_client_id(timestamp: int) -> str:
    return f"client_{timestamp}_{uuid.uuid4().hex[:9]}"


class PushSubscriptionRegistry:
    """
    プッシュ購読の保持

    同じクライアントIDで再登録された場合は後勝ち（上書き）
    """

    def __init__(self, push_service: WebPushService, clock: Callable[[], int] = now_ms):
        self.push_service = push_service
        self._subscribers: Dict[str, PushSubscriber] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._subscribers

    def subscribers(self) -> List[PushSubscriber]:
        return list(self._subscribers.values())

    def subscribe(self, subscription: Dict[str, Any], client_id: Optional[str] = None) -> PushSubscriber:
        """
        購読を登録

        Args:
            subscription: 購読情報（endpoint, keys）
            client_id: クライアントID（省略時は採番）
        """
        timestamp = self._clock()
        client_id = client_id or generate_client_id(timestamp)
        if client_id in self._subscribers:
            logger.info(f"🔔 プッシュ購読を上書き: {client_id}")
        subscriber = PushSubscriber(client_id=client_id, subscription=subscription, subscribed_at=timestamp)
        self._subscribers[client_id] = subscriber
        logger.info(f"🔔 プッシュ購読登録: {client_id} (購読数: {len(self._subscribers)})")
        return subscriber

    def unsubscribe(self, client_id: str) -> bool:
        return self._subscribers.pop(client_id, None) is not None

    async def send_to_all(self, payload: Dict[str, Any]) -> PushDeliveryReport:
        """
        全購読にプッシュ通知を送信

        送信自体はスレッドプールで行い、購読の削除はイベントループ上で行う。
        410/413 で失敗した購読は削除する（再送しない）。
        """
        targets = self.subscribers()
        logger.info(f"📱 プッシュ通知送信開始: {len(targets)}件")

        sent = 0
        expired: List[PushSubscriber] = []
        for subscriber in targets:
            result = await run_in_threadpool(self.push_service.send, subscriber.subscription, payload)
            if result == PushResult.SUCCESS:
                sent += 1
            elif result == PushResult.SUBSCRIPTION_EXPIRED:
                expired.append(subscriber)

        pruned = 0
        for subscriber in expired:
            # 送信中に再登録された購読は残す
            if self._subscribers.get(subscriber.client_id) is subscriber:
                logger.info(f"🧹 無効なプッシュ購読を削除: {subscriber.client_id}")
                del self._subscribers[subscriber.client_id]
                pruned += 1

        logger.info(f"✅ プッシュ通知送信完了: {sent}/{len(targets)}件")
        return PushDeliveryReport(attempted=len(targets), sent=sent, pruned=pruned)
