"""
ポータル端末側の通知クライアント
"""

from .controller import ClientNotificationController, DisplayPhase, DisplayState
from .display import DeliverySource, NotificationView
from .fallback import DeliveryFallbackChannel, PermissionState, SystemNotifier
from .renderer import ConsoleRenderer, NotificationRenderer
from .storage import BrowserStorage, JsonFileStorage, StorageArea
from .timers import AsyncioScheduler, Scheduler, TimerHandle

__all__ = [
    "ClientNotificationController",
    "DisplayPhase",
    "DisplayState",
    "DeliverySource",
    "NotificationView",
    "DeliveryFallbackChannel",
    "PermissionState",
    "SystemNotifier",
    "ConsoleRenderer",
    "NotificationRenderer",
    "BrowserStorage",
    "JsonFileStorage",
    "StorageArea",
    "AsyncioScheduler",
    "Scheduler",
    "TimerHandle",
]
