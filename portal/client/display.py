"""
通知の表示内容
アイコン・タイトル・時刻ラベル・出自バッジを組み立てる
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from portal.models.notification import Notification, Priority, type_display

NOW_LABEL = "الآن"
AM_LABEL = "صباحاً"
PM_LABEL = "مساءً"


class DeliverySource(str, Enum):
    """表示に至った経路"""
    STREAM = "stream"
    BROADCAST = "broadcast"
    RESTORED = "restored"
    SERVER_FEED = "server_feed"
    LOCAL = "local"


SOURCE_BADGES = {
    DeliverySource.RESTORED: "مُستعاد",
    DeliverySource.SERVER_FEED: "من الإدارة",
}


@dataclass(frozen=True)
class NotificationView:
    """描画に渡す表示内容"""
    display_id: str
    notification_type: str
    priority: Priority
    icon: str
    title: str
    message: str
    time_label: str
    duration_label: str
    duration_ms: int
    badge: Optional[str] = None


def format_time_label(timestamp_ms: Optional[int]) -> str:
    """作成時刻を12時間表記（h:mm:ss 午前/午後）で返す。解釈できない場合は「今」"""
    if not timestamp_ms:
        return NOW_LABEL
    try:
        created = datetime.fromtimestamp(timestamp_ms / 1000)
    except (OverflowError, OSError, ValueError):
        return NOW_LABEL
    hour = created.hour % 12 or 12
    period = AM_LABEL if created.hour < 12 else PM_LABEL
    return f"{hour}:{created.minute:02d}:{created.second:02d} {period}"


def format_duration_label(minutes: int) -> str:
    return f"{minutes} دقيقة"


def build_view(
    display_id: str,
    notification: Notification,
    duration_ms: int,
    source: DeliverySource = DeliverySource.LOCAL,
) -> NotificationView:
    display = type_display(notification.notification_type)
    return NotificationView(
        display_id=display_id,
        notification_type=notification.notification_type,
        priority=notification.priority,
        icon=display.icon,
        title=notification.title or display.default_title,
        message=notification.message,
        time_label=format_time_label(notification.created_at),
        duration_label=format_duration_label(notification.display_minutes),
        duration_ms=duration_ms,
        badge=SOURCE_BADGES.get(source),
    )
