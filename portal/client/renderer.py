"""
通知の描画
ページ上の通知要素の追加・進捗バー・強調表示・退場アニメーション
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from portal.client.display import NotificationView
from portal.models.notification import Priority

logger = logging.getLogger(__name__)


class NotificationRenderer(ABC):
    """通知要素の描画先"""

    @abstractmethod
    def mount(self, view: NotificationView) -> Any:
        """通知要素を追加し、以降の操作に使うハンドルを返す"""

    @abstractmethod
    def start_progress(self, element: Any, remaining_ms: int, duration_ms: int) -> None:
        """残り時間に合わせて進捗バーを動かす"""

    @abstractmethod
    def stop_progress(self, element: Any) -> None:
        ...

    def set_emphasis(self, element: Any, priority: Priority) -> None:
        pass

    def clear_emphasis(self, element: Any) -> None:
        pass

    @abstractmethod
    def hide(self, element: Any) -> None:
        """退場アニメーションを開始"""

    @abstractmethod
    def remove(self, element: Any) -> None:
        ...

    def snap_back(self, element: Any) -> None:
        """スワイプが閾値未満だった場合に元の位置へ戻す"""


class ConsoleRenderer(NotificationRenderer):
    """ログに通知を出力する描画先（ヘッドレス端末用）"""

    def mount(self, view: NotificationView) -> Any:
        badge = f" [{view.badge}]" if view.badge else ""
        logger.info(
            f"{view.icon} {view.title}{badge}: {view.message} "
            f"({view.time_label} / {view.duration_label})"
        )
        return view.display_id

    def start_progress(self, element: Any, remaining_ms: int, duration_ms: int) -> None:
        logger.debug(f"⏱️ {element}: 残り {remaining_ms}ms / {duration_ms}ms")

    def stop_progress(self, element: Any) -> None:
        logger.debug(f"⏸️ {element}: 進捗停止")

    def set_emphasis(self, element: Any, priority: Priority) -> None:
        if priority != Priority.NORMAL:
            logger.info(f"❗ {element}: 優先度 {priority.value}")

    def hide(self, element: Any) -> None:
        logger.debug(f"👋 {element}: 非表示")

    def remove(self, element: Any) -> None:
        logger.debug(f"🗑️ {element}: 削除")
