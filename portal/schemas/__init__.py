"""
Pydantic Schemas for Hi-Tech Hotspot Portal
"""

from .notification import (
    ActiveNotificationsResponse,
    SendNotificationRequest,
    SendNotificationResponse,
    StatusResponse,
)
from .push import (
    PushSendRequest,
    PushSendResponse,
    PushSubscribeRequest,
    PushSubscribeResponse,
    PushSubscriptionInfo,
)

__all__ = [
    "ActiveNotificationsResponse",
    "SendNotificationRequest",
    "SendNotificationResponse",
    "StatusResponse",
    "PushSendRequest",
    "PushSendResponse",
    "PushSubscribeRequest",
    "PushSubscribeResponse",
    "PushSubscriptionInfo",
]
