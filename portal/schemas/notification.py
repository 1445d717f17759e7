"""Notification schemas"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal.models.notification import DEFAULT_MESSAGE, NotificationType, Priority, parse_priority


class SendNotificationRequest(BaseModel):
    """管理者による通知送信リクエスト"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "token": "change-me-admin-token",
                "notificationType": "maintenance_alert",
                "title": "صيانة النظام",
                "message": "الخدمة متوقفة لمدة 10 دقائق",
                "duration": 600000,
                "priority": "high",
            }
        },
    )

    token: Optional[str] = Field(None, description="管理者トークン")
    id: Optional[str] = Field(None, max_length=128, description="通知ID（省略時はサーバーで採番）")
    notification_type: str = Field(
        NotificationType.SERVICE_ANNOUNCEMENT.value, alias="notificationType", max_length=64, description="通知種別"
    )
    title: Optional[str] = Field(None, max_length=255, description="タイトル")
    message: str = Field(DEFAULT_MESSAGE, description="本文")
    duration: Optional[int] = Field(None, ge=0, description="表示期間（ミリ秒、0は未指定扱い）")
    display_duration: Optional[int] = Field(None, alias="displayDuration", ge=0, description="表示期間（分、0は未指定扱い）")
    priority: Priority = Field(Priority.NORMAL, description="優先度（normal/high/urgent）")

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Priority:
        return parse_priority(value)

    @field_validator("message", mode="before")
    @classmethod
    def _default_message(cls, value: Any) -> Any:
        return value or DEFAULT_MESSAGE


class SendNotificationResponse(BaseModel):
    """通知送信レスポンス"""
    success: bool = Field(..., description="処理成功フラグ")
    notificationId: str = Field(..., description="通知ID")
    clientsNotified: int = Field(..., description="配信したクライアント数")


class ActiveNotificationsResponse(BaseModel):
    """有効な通知一覧レスポンス"""
    notifications: List[Dict[str, Any]] = Field(default_factory=list, description="有効な通知（追加順）")


class StatusResponse(BaseModel):
    """サーバー状態レスポンス"""
    status: str = Field("running", description="稼働状態")
    connectedClients: int = Field(..., description="接続中のストリーム数")
    activeNotifications: int = Field(..., description="有効な通知数")
    storedNotifications: int = Field(..., description="保持している通知数")
    pushSubscribers: int = Field(..., description="プッシュ購読数")
    uptime: float = Field(..., description="稼働時間（秒）")
    timestamp: int = Field(..., description="サーバー時刻（エポックミリ秒）")
    jobs: List[Dict[str, Any]] = Field(default_factory=list, description="定期ジョブ")
