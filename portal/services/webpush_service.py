"""
Web Push通知サービス
ページを開いていない端末にもOSレベルの通知を送信する
"""
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

from pywebpush import webpush, WebPushException

from portal.models.notification import NotificationType, Priority

logger = logging.getLogger(__name__)

DEFAULT_PUSH_TITLE = "هاي تك للإنترنت"
DEFAULT_PUSH_BODY = "لديك إشعار جديد"
LOGIN_URL = "/login.html"

# 購読が無効になったことを示すステータス（410 Gone / 413 Payload Too Large）
EXPIRED_STATUS_CODES = (410, 413)


class PushResult(Enum):
    """プッシュ通知の送信結果"""
    SUCCESS = "success"
    FAILED = "failed"
    SUBSCRIPTION_EXPIRED = "subscription_expired"  # 購読が無効


def build_push_payload(
    notification_type: Optional[str],
    title: Optional[str],
    message: Optional[str],
    priority: Priority,
    timestamp: int,
) -> Dict[str, Any]:
    """
    サービスワーカーに渡すプッシュ通知ペイロードを作成

    Args:
        notification_type: 通知種別
        title: タイトル（省略時はサービス名）
        message: 本文
        priority: 優先度
        timestamp: 送信時刻（エポックミリ秒）
    """
    require_interaction = (
        priority == Priority.URGENT
        or notification_type == NotificationType.MAINTENANCE_ALERT.value
    )
    return {
        "title": title or DEFAULT_PUSH_TITLE,
        "body": message or DEFAULT_PUSH_BODY,
        "tag": f"{notification_type or 'notification'}_{timestamp}",
        "requireInteraction": require_interaction,
        "data": {
            "notificationType": notification_type,
            "timestamp": timestamp,
            "url": LOGIN_URL,
        },
    }


class WebPushService:
    """VAPID鍵を使ったWeb Push送信"""

    def __init__(self, public_key: str, private_key: str, claims_email: str):
        self.public_key = public_key
        self.private_key = private_key
        self.claims_email = claims_email

    @property
    def configured(self) -> bool:
        return bool(self.public_key and self.private_key)

    def send(self, subscription_info: Dict[str, Any], payload: Dict[str, Any]) -> PushResult:
        """
        ブラウザプッシュ通知を送信

        Args:
            subscription_info: ブラウザから取得した購読情報（endpoint, keys）
            payload: 通知ペイロード

        Returns:
            PushResult: 送信結果（SUCCESS, FAILED, SUBSCRIPTION_EXPIRED）
        """
        if not self.configured:
            logger.error("VAPID鍵が設定されていません")
            return PushResult.FAILED

        try:
            webpush(
                subscription_info=subscription_info,
                data=json.dumps(payload, ensure_ascii=False),
                vapid_private_key=self.private_key,
                vapid_claims={"sub": self.claims_email},
            )
            logger.info(f"プッシュ通知送信成功: {payload.get('title')}")
            return PushResult.SUCCESS

        except WebPushException as e:
            logger.error(f"プッシュ通知送信エラー: {str(e)}")
            if e.response is not None and e.response.status_code in EXPIRED_STATUS_CODES:
                logger.warning("購読が無効になっています（ブラウザで解除された可能性）")
                return PushResult.SUBSCRIPTION_EXPIRED
            return PushResult.FAILED
        except Exception as e:
            logger.error(f"プッシュ通知エラー: {str(e)}")
            return PushResult.FAILED
