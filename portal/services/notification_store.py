"""
通知ストア
直近の通知を作成順に保持するインメモリストア（上限付き）
"""

import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from portal.models.notification import Notification, now_ms

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    直近の通知を保持するストア

    - 上限を超えた場合は期限に関係なく最も古い通知から破棄
    - 有効判定は常に expires_at > now で行う（フラグは持たない）
    - イベントループからのみ操作される前提のためロックは持たない
    """

    # デフォルト上限: 10件
    DEFAULT_LIMIT = 10

    def __init__(self, limit: int = DEFAULT_LIMIT, clock: Callable[[], int] = now_ms):
        """
        Args:
            limit: 保持する通知の最大数
            clock: 現在時刻（エポックミリ秒）を返す関数
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        self._items: Deque[Notification] = deque(maxlen=limit)
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._items.maxlen

    def __len__(self) -> int:
        return len(self._items)

    def submit(self, notification: Notification) -> Notification:
        """
        通知を追加し、上限を超えた分を古い順に破棄

        Returns:
            保存した通知
        """
        if len(self._items) == self._items.maxlen:
            evicted = self._items[0]
            logger.info(f"🧹 上限超過のため最古の通知を破棄: {evicted.id}")
        self._items.append(notification)
        return notification

    def active_notifications(self, now: Optional[int] = None) -> List[Notification]:
        """
        現在有効な通知を追加順で取得（副作用なし）

        Args:
            now: 判定時刻（省略時は現在時刻）
        """
        if now is None:
            now = self._clock()
        return [n for n in self._items if n.is_active(now)]

    def all(self) -> List[Notification]:
        return list(self._items)

    def get(self, notification_id: str) -> Optional[Notification]:
        for notification in self._items:
            if notification.id == notification_id:
                return notification
        return None

    def sweep_expired(self, now: Optional[int] = None) -> int:
        """
        期限切れの通知を削除

        Returns:
            削除した件数
        """
        if now is None:
            now = self._clock()
        before = len(self._items)
        kept = [n for n in self._items if n.is_active(now)]
        self._items.clear()
        self._items.extend(kept)
        removed = before - len(kept)
        if removed:
            logger.info(f"🧹 期限切れ通知を削除: {removed}件")
        return removed

    def clear(self) -> int:
        count = len(self._items)
        self._items.clear()
        return count
