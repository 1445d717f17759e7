"""
通知配信サービス
"""

from .broadcast_hub import BroadcastHub, StreamClosedError, StreamConnection
from .notification_service import NotificationService, verify_admin_token
from .notification_store import NotificationStore
from .push_registry import PushSubscriptionRegistry
from .webpush_service import PushResult, WebPushService

__all__ = [
    "BroadcastHub",
    "StreamClosedError",
    "StreamConnection",
    "NotificationService",
    "verify_admin_token",
    "NotificationStore",
    "PushSubscriptionRegistry",
    "PushResult",
    "WebPushService",
]
