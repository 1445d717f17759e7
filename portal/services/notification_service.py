"""
通知サービス
管理者からの通知を作成・保存し、接続中の端末へ配信する
"""
import logging
import secrets
from typing import Callable, Optional, Tuple

from portal.models.notification import (
    DEFAULT_SENDER,
    Notification,
    generate_notification_id,
    now_ms,
)
from portal.schemas.notification import SendNotificationRequest
from portal.services.broadcast_hub import BroadcastHub
from portal.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)


def verify_admin_token(token: Optional[str], admin_token: str) -> bool:
    """管理者トークン（共有シークレット）を照合"""
    if not token or not admin_token:
        return False
    return secrets.compare_digest(token.encode(), admin_token.encode())


def resolve_duration_ms(request: SendNotificationRequest, default_ms: int) -> int:
    """
    表示期間（ミリ秒）を決定

    duration（ミリ秒）→ displayDuration（分）→ デフォルト の順に採用
    """
    if request.duration:
        return request.duration
    if request.display_duration:
        return request.display_duration * 60 * 1000
    return default_ms


class NotificationService:
    """通知サービスクラス"""

    def __init__(
        self,
        store: NotificationStore,
        hub: BroadcastHub,
        default_duration_ms: int,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.hub = hub
        self.default_duration_ms = default_duration_ms
        self._clock = clock

    def build_notification(self, request: SendNotificationRequest) -> Notification:
        """リクエストから通知を作成"""
        created_at = self._clock()
        return Notification(
            id=request.id or generate_notification_id(created_at),
            notification_type=request.notification_type,
            title=request.title or "",
            message=request.message,
            priority=request.priority,
            created_at=created_at,
            duration_ms=resolve_duration_ms(request, self.default_duration_ms),
            display_duration=request.display_duration or None,
            sender=DEFAULT_SENDER,
        )

    def submit(self, request: SendNotificationRequest) -> Tuple[Notification, int]:
        """
        通知を保存して全接続へ配信

        一部の接続への配信失敗は全体の失敗として扱わない

        Returns:
            (保存した通知, 配信できたクライアント数)
        """
        notification = self.store.submit(self.build_notification(request))
        logger.info(
            f"🔔 通知作成: id={notification.id}, type={notification.notification_type}, "
            f"priority={notification.priority.value}, duration={notification.duration_ms}ms"
        )
        clients_notified = self.hub.broadcast_notification(notification.to_wire())
        return notification, clients_notified
