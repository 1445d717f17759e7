"""
端末通知（OSレベル）へのフォールバック
ページが非表示、またはタッチ端末の場合にページ内表示と並行して端末通知を出す
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from portal.client.timers import Scheduler, TimerHandle
from portal.models.notification import PRIORITY_DISPLAY, Notification, type_display

logger = logging.getLogger(__name__)

NOTIFICATION_ICON = "/icons/icon-192x192.png"
NOTIFICATION_BADGE = "/icons/icon-72x72.png"
NOTIFICATION_ACTIONS = (
    {"action": "view", "title": "عرض"},
    {"action": "dismiss", "title": "إغلاق"},
)


class PermissionState(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"
    UNSUPPORTED = "unsupported"


class SystemNotifier(ABC):
    """端末通知の表示先"""

    @property
    @abstractmethod
    def permission(self) -> PermissionState:
        ...

    @abstractmethod
    def request_permission(self) -> PermissionState:
        ...

    @abstractmethod
    def show(self, title: str, options: Dict[str, Any], on_close: Callable[[], None]) -> Any:
        """
        端末通知を表示し、ハンドルを返す

        ユーザーがクリックまたは閉じた場合は on_close を呼ぶこと
        """

    @abstractmethod
    def close(self, handle: Any) -> None:
        ...


class LoggingNotifier(SystemNotifier):
    """端末通知をログ出力で代替する（ヘッドレス端末用）"""

    def __init__(self, granted: bool = True):
        self._permission = PermissionState.GRANTED if granted else PermissionState.DENIED

    @property
    def permission(self) -> PermissionState:
        return self._permission

    def request_permission(self) -> PermissionState:
        return self._permission

    def show(self, title: str, options: Dict[str, Any], on_close: Callable[[], None]) -> Any:
        logger.info(f"📲 端末通知: {title} - {options.get('body', '')}")
        return options.get("tag")

    def close(self, handle: Any) -> None:
        logger.debug(f"📲 端末通知を閉じました: {handle}")


def build_notification_options(notification: Notification, now: int) -> Tuple[str, Dict[str, Any]]:
    """端末通知のタイトルとオプションを組み立てる"""
    display = type_display(notification.notification_type)
    priority_display = PRIORITY_DISPLAY[notification.priority]
    title = f"{display.icon} {notification.title or display.default_title}"
    options = {
        "body": notification.message,
        "icon": NOTIFICATION_ICON,
        "badge": NOTIFICATION_BADGE,
        "tag": notification.identity_key,
        "requireInteraction": display.require_interaction or priority_display.require_interaction,
        "silent": False,
        "vibrate": list(priority_display.vibration),
        "data": {
            "notificationType": notification.notification_type,
            "priority": notification.priority.value,
            "timestamp": now,
            "url": "/login.html",
        },
        "actions": [dict(action) for action in NOTIFICATION_ACTIONS],
        "renotify": True,
        "dir": "rtl",
        "lang": "ar",
    }
    return title, options


class DeliveryFallbackChannel:
    """
    端末通知チャネル

    表示可否の判定と、ページ内表示と同じ残り時間での自動クローズを担当する。
    重複排除はページ内表示側で済ませてから呼び出すこと。
    """

    def __init__(self, notifier: SystemNotifier, scheduler: Scheduler, touch_device: bool = False):
        self.notifier = notifier
        self.scheduler = scheduler
        self.touch_device = touch_device
        self._open: Dict[str, Tuple[Any, Optional[TimerHandle]]] = {}

    @property
    def permitted(self) -> bool:
        return self.notifier.permission == PermissionState.GRANTED

    def should_notify(self, page_hidden: bool) -> bool:
        return self.permitted and (page_hidden or self.touch_device)

    def request_permission(self) -> bool:
        try:
            state = self.notifier.request_permission()
        except Exception:
            logger.exception("端末通知の許可リクエストに失敗しました")
            return False
        logger.info(f"🔔 端末通知の許可状態: {state.value}")
        return state == PermissionState.GRANTED

    def notify(self, notification: Notification, remaining_ms: int) -> bool:
        """端末通知を表示し、remaining_ms 後に自動で閉じる"""
        if not self.permitted:
            return False

        key = notification.identity_key
        title, options = build_notification_options(notification, self.scheduler.now())
        try:
            handle = self.notifier.show(title, options, on_close=lambda: self._closed(key))
        except Exception:
            logger.exception(f"端末通知の表示に失敗しました: {key}")
            return False

        timer = None
        if remaining_ms > 0:
            timer = self.scheduler.call_later(remaining_ms, self._auto_close, key)
        self._open[key] = (handle, timer)
        return True

    def _auto_close(self, key: str) -> None:
        entry = self._open.pop(key, None)
        if entry is None:
            return
        try:
            self.notifier.close(entry[0])
        except Exception:
            logger.exception(f"端末通知を閉じられませんでした: {key}")

    def _closed(self, key: str) -> None:
        entry = self._open.pop(key, None)
        if entry is not None and entry[1] is not None:
            entry[1].cancel()

    @property
    def open_count(self) -> int:
        return len(self._open)
