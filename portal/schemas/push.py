"""Push subscription schemas"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal.models.notification import Priority, parse_priority


class PushSubscriptionInfo(BaseModel):
    """ブラウザから取得したプッシュ購読情報"""
    model_config = ConfigDict(extra="allow")

    endpoint: str = Field(..., min_length=1, description="プッシュサービスのエンドポイント")
    keys: Dict[str, str] = Field(default_factory=dict, description='{"p256dh": "...", "auth": "..."}')
    expirationTime: Optional[int] = None


class PushSubscribeRequest(BaseModel):
    """プッシュ購読登録リクエスト"""
    subscription: PushSubscriptionInfo
    clientId: Optional[str] = Field(None, max_length=128, description="クライアントID（省略時は採番）")


class PushSubscribeResponse(BaseModel):
    """プッシュ購読登録レスポンス"""
    success: bool = True
    clientId: str
    totalSubscribed: int


class PushSendRequest(BaseModel):
    """プッシュ通知一斉送信リクエスト（管理者用）"""
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = Field(None, description="管理者トークン")
    notification_type: Optional[str] = Field(None, alias="notificationType", max_length=64)
    title: Optional[str] = Field(None, max_length=255)
    message: Optional[str] = None
    priority: Priority = Priority.NORMAL

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Priority:
        return parse_priority(value)


class PushSendResponse(BaseModel):
    """プッシュ通知一斉送信レスポンス"""
    success: bool = True
    clientsNotified: int = Field(..., description="送信対象の購読数")
    sent: int = Field(..., description="送信成功数")
    pruned: int = Field(..., description="無効のため削除した購読数")
