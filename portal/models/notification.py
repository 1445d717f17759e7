"""
Notification Model - ホットスポット通知の値オブジェクト
種別・優先度ごとの表示メタデータもここで定義する
"""
import math
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# デフォルト表示時間: 5分
DEFAULT_DURATION_MS = 5 * 60 * 1000
DEFAULT_MESSAGE = "لديك إشعار جديد"
DEFAULT_SENDER = "admin"


def now_ms() -> int:
    """現在時刻（エポックミリ秒）"""
    return int(time.time() * 1000)


class NotificationType(str, Enum):
    """通知種別"""
    MAINTENANCE_ALERT = "maintenance_alert"
    MAINTENANCE_COMPLETED = "maintenance_completed"
    SERVICE_ANNOUNCEMENT = "service_announcement"
    CONNECTION_RESTORED = "connection_restored"
    CONNECTION_LOST = "connection_lost"
    SLOW_CONNECTION = "slow_connection"


class Priority(str, Enum):
    """優先度（表示の強調のみに影響し、配信順序には影響しない）"""
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class TypeDisplay:
    """通知種別ごとの表示メタデータ"""
    icon: str
    default_title: str
    require_interaction: bool = False


@dataclass(frozen=True)
class PriorityDisplay:
    """優先度ごとの表示メタデータ"""
    vibration: Tuple[int, ...]
    emphasis_ms: int
    require_interaction: bool = False


TYPE_DISPLAY: Dict[NotificationType, TypeDisplay] = {
    NotificationType.MAINTENANCE_ALERT: TypeDisplay("🔧", "صيانة النظام", require_interaction=True),
    NotificationType.MAINTENANCE_COMPLETED: TypeDisplay("✅", "انتهاء الصيانة"),
    NotificationType.SERVICE_ANNOUNCEMENT: TypeDisplay("📢", "إعلان مهم"),
    NotificationType.CONNECTION_RESTORED: TypeDisplay("✅", "تم استعادة الاتصال"),
    NotificationType.CONNECTION_LOST: TypeDisplay("⚠️", "انقطع الاتصال"),
    NotificationType.SLOW_CONNECTION: TypeDisplay("🐌", "اتصال بطيء"),
}

# 未知の種別（将来追加される種別を含む）
GENERIC_DISPLAY = TypeDisplay("🔔", "إشعار")

PRIORITY_DISPLAY: Dict[Priority, PriorityDisplay] = {
    Priority.URGENT: PriorityDisplay((200, 100, 200, 100, 200, 100, 200), 1500, require_interaction=True),
    Priority.HIGH: PriorityDisplay((100, 50, 100, 50, 100), 2000),
    Priority.NORMAL: PriorityDisplay((100, 50, 100), 0),
}


def type_display(notification_type: Optional[str]) -> TypeDisplay:
    """種別文字列から表示メタデータを取得（未知の種別は汎用表示）"""
    try:
        return TYPE_DISPLAY[NotificationType(notification_type)]
    except ValueError:
        return GENERIC_DISPLAY


def parse_priority(value: Any) -> Priority:
    """優先度を解釈する。未知の値は normal として扱う"""
    if isinstance(value, Priority):
        return value
    try:
        return Priority(value)
    except ValueError:
        return Priority.NORMAL


def generate_notification_id(created_at: int) -> str:
    """サーバー側で通知IDを採番"""
    return f"{created_at}_{uuid.uuid4().hex[:9]}"


class Notification(BaseModel):
    """
    通知（作成後は不変）

    有効/期限切れの状態は保持せず、常に expires_at と現在時刻から導出する。
    JSON上のキー名はポータル側ページが読む camelCase に合わせている。
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[str] = Field(None, description="通知ID")
    notification_type: str = Field(
        NotificationType.SERVICE_ANNOUNCEMENT.value, alias="notificationType", description="通知種別"
    )
    title: str = Field("", description="タイトル（空の場合は種別のデフォルト）")
    message: str = Field(DEFAULT_MESSAGE, description="本文")
    priority: Priority = Field(Priority.NORMAL, description="優先度")
    created_at: int = Field(..., alias="timestamp", description="作成日時（エポックミリ秒）")
    duration_ms: int = Field(DEFAULT_DURATION_MS, alias="duration", gt=0, description="有効期間（ミリ秒）")
    display_duration: Optional[int] = Field(None, alias="displayDuration", description="表示用の分数")
    sender: str = Field(DEFAULT_SENDER, description="送信元")

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> Priority:
        return parse_priority(value)

    @field_validator("title", "message", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @computed_field(alias="expiresAt")
    @property
    def expires_at(self) -> int:
        return self.created_at + self.duration_ms

    def is_active(self, now: int) -> bool:
        return self.expires_at > now

    def remaining_ms(self, now: int) -> int:
        return max(0, self.expires_at - now)

    @property
    def identity_key(self) -> str:
        """重複排除キー（IDが無い場合は 種別_作成日時）"""
        if self.id:
            return self.id
        return f"{self.notification_type}_{self.created_at}"

    @property
    def display_minutes(self) -> int:
        if self.display_duration:
            return self.display_duration
        return math.ceil(self.duration_ms / 60000)

    def to_wire(self) -> Dict[str, Any]:
        """ストリーム・APIレスポンス用の辞書に変換"""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, payload: Dict[str, Any], now: Optional[int] = None) -> "Notification":
        """
        受信した辞書から通知を復元

        timestamp が無いペイロード（タブ間ブロードキャスト等）は受信時刻を作成日時とみなす
        """
        data = dict(payload)
        if data.get("timestamp") is None:
            data["timestamp"] = now if now is not None else now_ms()
        if not data.get("duration"):
            minutes = data.get("displayDuration")
            data["duration"] = int(minutes) * 60000 if minutes else DEFAULT_DURATION_MS
        return cls.model_validate(data)
