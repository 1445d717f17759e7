"""依存注入モジュール"""
from typing import Optional

from fastapi import HTTPException, Request, status

from portal.config import Settings
from portal.services.broadcast_hub import BroadcastHub
from portal.services.notification_service import NotificationService, verify_admin_token
from portal.services.notification_store import NotificationStore
from portal.services.push_registry import PushSubscriptionRegistry


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> NotificationStore:
    return request.app.state.store


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_push_registry(request: Request) -> PushSubscriptionRegistry:
    return request.app.state.push_registry


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


def require_admin_token(token: Optional[str], settings: Settings) -> None:
    """
    管理者トークンを検証
    一致しない場合は401を返す
    """
    if not verify_admin_token(token, settings.ADMIN_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
