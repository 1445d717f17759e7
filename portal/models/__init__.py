"""
Models for Hi-Tech Hotspot Portal
"""

from .notification import (
    DEFAULT_DURATION_MS,
    GENERIC_DISPLAY,
    PRIORITY_DISPLAY,
    TYPE_DISPLAY,
    Notification,
    NotificationType,
    Priority,
    PriorityDisplay,
    TypeDisplay,
    generate_notification_id,
    now_ms,
    parse_priority,
    type_display,
)

__all__ = [
    "DEFAULT_DURATION_MS",
    "GENERIC_DISPLAY",
    "PRIORITY_DISPLAY",
    "TYPE_DISPLAY",
    "Notification",
    "NotificationType",
    "Priority",
    "PriorityDisplay",
    "TypeDisplay",
    "generate_notification_id",
    "now_ms",
    "parse_priority",
    "type_display",
]
