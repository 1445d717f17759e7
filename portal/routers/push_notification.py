"""
プッシュ通知API
ブラウザプッシュ通知の購読管理と一斉送信
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from portal.config import Settings
from portal.dependencies import get_push_registry, get_settings, require_admin_token
from portal.models.notification import now_ms
from portal.schemas.push import (
    PushSendRequest,
    PushSendResponse,
    PushSubscribeRequest,
    PushSubscribeResponse,
)
from portal.services.push_registry import PushSubscriptionRegistry
from portal.services.webpush_service import build_push_payload

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/push", tags=["push-notifications"])


@router.get("/vapid-public-key")
async def get_public_key(registry: PushSubscriptionRegistry = Depends(get_push_registry)):
    """
    VAPID公開鍵を取得
    フロントエンドでプッシュ通知を購読する際に必要
    """
    public_key = registry.push_service.public_key
    if not public_key:
        raise HTTPException(status_code=500, detail="VAPID公開鍵が設定されていません")
    return {"publicKey": public_key}


@router.post("/subscribe", response_model=PushSubscribeResponse)
async def subscribe_push(
    request: PushSubscribeRequest,
    registry: PushSubscriptionRegistry = Depends(get_push_registry),
):
    """
    プッシュ通知を購読
    ブラウザから取得した購読情報をクライアントIDに紐付けて保存
    """
    subscriber = registry.subscribe(
        subscription=request.subscription.model_dump(exclude_none=True),
        client_id=request.clientId,
    )
    return PushSubscribeResponse(
        success=True,
        clientId=subscriber.client_id,
        totalSubscribed=len(registry),
    )


@router.post("/send", response_model=PushSendResponse)
async def send_push(
    request: PushSendRequest,
    settings: Settings = Depends(get_settings),
    registry: PushSubscriptionRegistry = Depends(get_push_registry),
):
    """全購読者にプッシュ通知を送信（管理者用）"""
    require_admin_token(request.token, settings)

    payload = build_push_payload(
        notification_type=request.notification_type,
        title=request.title,
        message=request.message,
        priority=request.priority,
        timestamp=now_ms(),
    )
    report = await registry.send_to_all(payload)
    return PushSendResponse(
        success=True,
        clientsNotified=report.attempted,
        sent=report.sent,
        pruned=report.pruned,
    )
