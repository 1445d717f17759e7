"""
通知API
管理者からの通知送信、有効な通知の取得、リアルタイム配信ストリーム
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from portal.config import Settings
from portal.dependencies import (
    get_hub,
    get_notification_service,
    get_settings,
    get_store,
    require_admin_token,
)
from portal.schemas.notification import (
    ActiveNotificationsResponse,
    SendNotificationRequest,
    SendNotificationResponse,
)
from portal.services.broadcast_hub import BroadcastHub, stream_events
from portal.services.notification_service import NotificationService
from portal.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/api/notifications/send",
    response_model=SendNotificationResponse,
    summary="通知送信（管理者）",
    description="""
接続中の全端末に通知を配信します。

## 認証
リクエストボディの `token` が管理者トークンと一致する必要があります。

## 表示期間
`duration`（ミリ秒）→ `displayDuration`（分）→ 5分 の順に採用します。
""",
    responses={
        200: {
            "description": "送信成功",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "notificationId": "1735689600000_a1b2c3d4e",
                        "clientsNotified": 3,
                    }
                }
            },
        },
        400: {"description": "JSONが不正"},
        401: {"description": "管理者トークンが不正"},
    },
)
async def send_notification(
    request: SendNotificationRequest,
    settings: Settings = Depends(get_settings),
    service: NotificationService = Depends(get_notification_service),
):
    """通知を保存し、全ストリームへ配信"""
    require_admin_token(request.token, settings)

    notification, clients_notified = service.submit(request)
    return SendNotificationResponse(
        success=True,
        notificationId=notification.id,
        clientsNotified=clients_notified,
    )


@router.get(
    "/api/notifications/active",
    response_model=ActiveNotificationsResponse,
    summary="有効な通知一覧",
)
async def get_active_notifications(store: NotificationStore = Depends(get_store)):
    """期限切れでない通知を追加順に返す"""
    return ActiveNotificationsResponse(
        notifications=[n.to_wire() for n in store.active_notifications()]
    )


@router.get("/notifications/stream", summary="通知ストリーム（Server-Sent Events）")
async def notification_stream(hub: BroadcastHub = Depends(get_hub)):
    """
    リアルタイム通知ストリーム

    connected / notification / heartbeat の各メッセージを `data: {json}` 形式で送信する
    """
    connection = hub.open_connection()
    return StreamingResponse(
        stream_events(hub, connection),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
