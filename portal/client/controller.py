"""
通知表示コントローラ（タブごとに1インスタンス）

受信した通知の重複排除・表示・自動消去と、リロードをまたいだ表示状態の復元を担当する。
各通知は Pending → Visible → Dismissing → Gone の順に遷移する。
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from portal.client.display import DeliverySource, build_view
from portal.client.fallback import DeliveryFallbackChannel
from portal.client.recent import RecentlyShownKeys
from portal.client.renderer import NotificationRenderer
from portal.client.storage import (
    ACTIVE_SNAPSHOT_KEY,
    BROADCAST_KEY,
    SERVER_FEED_KEY,
    BrowserStorage,
)
from portal.client.timers import Scheduler, TimerHandle
from portal.config import ClientSettings
from portal.models.notification import (
    PRIORITY_DISPLAY,
    Notification,
    NotificationType,
    Priority,
)

logger = logging.getLogger(__name__)

WELCOME_TITLE = "مرحباً بك"
WELCOME_MESSAGE = "تم تفعيل الإشعارات بنجاح! ستصلك الآن جميع الإعلانات المهمة."
SERVER_FEED_LIMIT = 10
SERVER_FEED_STAGGER_MS = 200


class DisplayPhase(str, Enum):
    PENDING = "pending"
    VISIBLE = "visible"
    DISMISSING = "dismissing"
    GONE = "gone"


@dataclass
class DisplayState:
    """1件の表示状態（このタブのコントローラだけが保持する）"""
    display_id: str
    key: str
    notification: Notification
    payload: Dict[str, Any]
    source: DeliverySource
    element: Any
    duration_ms: int
    started_at: int
    remaining_ms: int
    phase: DisplayPhase = DisplayPhase.VISIBLE
    paused: bool = False
    dismiss_timer: Optional[TimerHandle] = None
    emphasis_timer: Optional[TimerHandle] = None
    exit_timer: Optional[TimerHandle] = None

    def remaining_at(self, now: int) -> int:
        if self.paused:
            return self.remaining_ms
        return max(0, self.remaining_ms - (now - self.started_at))


class ClientNotificationController:
    """
    通知表示コントローラ

    Args:
        renderer: 通知要素の描画先
        scheduler: 時刻とタイマー
        storage: タブ間で共有される永続ストレージ
        settings: クライアント設定
        fallback: 端末通知チャネル（任意）
        touch_device: タッチ端末かどうか（未指定時は設定値）
    """

    def __init__(
        self,
        renderer: NotificationRenderer,
        scheduler: Scheduler,
        storage: BrowserStorage,
        settings: Optional[ClientSettings] = None,
        fallback: Optional[DeliveryFallbackChannel] = None,
        touch_device: Optional[bool] = None,
    ):
        self.settings = settings or ClientSettings()
        self.renderer = renderer
        self.scheduler = scheduler
        self.storage = storage
        self.fallback = fallback
        self.touch_device = self.settings.TOUCH_DEVICE if touch_device is None else touch_device
        self.max_visible = (
            self.settings.MAX_VISIBLE_TOUCH if self.touch_device else self.settings.MAX_VISIBLE_DESKTOP
        )
        self.recent = RecentlyShownKeys(
            storage,
            clock=scheduler.now,
            window_ms=self.settings.DEDUP_WINDOW_MS,
            max_keys=self.settings.DEDUP_MAX_KEYS,
        )
        self.page_hidden = False
        self.last_heartbeat: Optional[int] = None
        self._displays: Dict[str, DisplayState] = {}
        self._sequence = itertools.count(1)
        self._periodic: List[TimerHandle] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._started = False

    # ============================================
    # ライフサイクル
    # ============================================
    def start(self) -> int:
        """
        ページ読み込み時の処理

        タブ間ブロードキャストを購読し、前回の表示状態を復元してから定期処理を開始する。
        戻り値は復元を予約した件数。
        """
        if self._started:
            return 0
        self._started = True
        self._unsubscribe = self.storage.subscribe(BROADCAST_KEY, self._on_broadcast)
        restored = self.restore_snapshot()
        self.check_server_feed()
        self._periodic = [
            self.scheduler.call_every(self.settings.SNAPSHOT_INTERVAL_MS, self._periodic_snapshot),
            self.scheduler.call_every(self.settings.FEED_CHECK_INTERVAL_MS, self.check_server_feed),
        ]
        return restored

    def stop(self) -> None:
        """ページを離れる前の処理（表示状態を保存してタイマーを止める）"""
        if not self._started:
            return
        self.save_snapshot()
        for handle in self._periodic:
            handle.cancel()
        self._periodic = []
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for state in self._displays.values():
            self._cancel_timers(state)
        self._started = False

    # ============================================
    # 受信
    # ============================================
    def handle_stream_message(self, message: Dict[str, Any]) -> Optional[str]:
        """ストリームから受信したメッセージを処理"""
        message_type = message.get("type")
        if message_type == "connected":
            logger.info(f"✅ 通知サービスに接続: {message.get('message', '')}")
            return None
        if message_type == "heartbeat":
            self.last_heartbeat = self.scheduler.now()
            return None
        if message_type == "notification":
            data = message.get("data")
            if not isinstance(data, dict):
                logger.warning("⚠️ 通知データが不正なため無視します")
                return None
            self.record_server_notification(data)
            return self.deliver(data, DeliverySource.STREAM)

        logger.debug(f"未知のメッセージ種別: {message_type}")
        return None

    def notify(self, payload: Dict[str, Any]) -> Optional[str]:
        """このタブ内で通知を表示"""
        return self.deliver(payload, DeliverySource.LOCAL)

    def broadcast_to_tabs(self, payload: Dict[str, Any]) -> None:
        """他のタブへ通知を送る（書き込んだタブ自身には届かない）"""
        message = dict(payload)
        message.setdefault("timestamp", self.scheduler.now())
        self.storage.set_json(BROADCAST_KEY, message)

    def _on_broadcast(self, value: Optional[Any]) -> None:
        if isinstance(value, dict):
            self.deliver(value, DeliverySource.BROADCAST)

    def deliver(
        self,
        payload: Dict[str, Any],
        source: DeliverySource = DeliverySource.LOCAL,
        remaining_ms: Optional[int] = None,
    ) -> Optional[str]:
        """
        通知を表示ゲートに通す

        残り時間が閾値未満、または重複と判定された場合は表示せず None を返す。
        表示した場合は表示IDを返す。
        """
        now = self.scheduler.now()
        try:
            notification = Notification.from_wire(payload, now=now)
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(f"⚠️ 通知データを解釈できません: {e}")
            return None

        key = notification.identity_key
        if remaining_ms is None:
            remaining_ms = notification.remaining_ms(now)
        if remaining_ms < self.settings.RESTORE_THRESHOLD_MS:
            logger.info(f"⏭️ 残り時間が短いため表示しません: {key} ({remaining_ms}ms)")
            return None

        if self._is_duplicate(key, source):
            logger.info(f"⏭️ 表示済みの通知をスキップ: {key} ({source.value})")
            return None
        self.recent.add(key)

        display_id = self._show(notification, payload, source, remaining_ms)
        if display_id is None:
            return None

        if self.fallback is not None and self.fallback.should_notify(self.page_hidden):
            self.scheduler.call_later(
                self.settings.FALLBACK_DELAY_MS, self.fallback.notify, notification, remaining_ms
            )
        return display_id

    def _is_duplicate(self, key: str, source: DeliverySource) -> bool:
        if self._is_displayed(key):
            return True
        if source == DeliverySource.RESTORED:
            return False
        return key in self.recent

    def _is_displayed(self, key: str) -> bool:
        return any(state.key == key for state in self._displays.values())

    # ============================================
    # 表示
    # ============================================
    def _show(
        self,
        notification: Notification,
        payload: Dict[str, Any],
        source: DeliverySource,
        remaining_ms: int,
    ) -> Optional[str]:
        self._enforce_visible_cap()

        now = self.scheduler.now()
        display_id = f"{source.value}-{next(self._sequence)}-{now}"
        view = build_view(display_id, notification, remaining_ms, source)
        try:
            element = self.renderer.mount(view)
        except Exception:
            logger.exception(f"通知の描画に失敗しました: {display_id}")
            return None

        state = DisplayState(
            display_id=display_id,
            key=notification.identity_key,
            notification=notification,
            payload=dict(payload),
            source=source,
            element=element,
            duration_ms=remaining_ms,
            started_at=now,
            remaining_ms=remaining_ms,
            paused=self.page_hidden,
        )
        self._displays[display_id] = state
        if not state.paused:
            self._start_countdown(state)
        self._apply_priority_emphasis(state)

        logger.info(f"🔔 通知を表示: {state.key} ({source.value}, {remaining_ms}ms)")
        self.save_snapshot()
        return display_id

    def _enforce_visible_cap(self) -> None:
        visible = [s for s in self._displays.values() if s.phase == DisplayPhase.VISIBLE]
        while len(visible) >= self.max_visible:
            oldest = visible.pop(0)
            logger.info(f"📤 表示上限のため古い通知を閉じます: {oldest.key}")
            self.dismiss(oldest.display_id)

    def _start_countdown(self, state: DisplayState) -> None:
        state.started_at = self.scheduler.now()
        state.paused = False
        state.dismiss_timer = self.scheduler.call_later(state.remaining_ms, self._expire, state.display_id)
        self.renderer.start_progress(state.element, state.remaining_ms, state.duration_ms)

    def _apply_priority_emphasis(self, state: DisplayState) -> None:
        emphasis_ms = PRIORITY_DISPLAY[state.notification.priority].emphasis_ms
        if emphasis_ms <= 0:
            return
        self.renderer.set_emphasis(state.element, state.notification.priority)
        state.emphasis_timer = self.scheduler.call_later(
            emphasis_ms, self.renderer.clear_emphasis, state.element
        )

    def _cancel_timers(self, state: DisplayState) -> None:
        for name in ("dismiss_timer", "emphasis_timer"):
            handle = getattr(state, name)
            if handle is not None:
                handle.cancel()
                setattr(state, name, None)

    def _expire(self, display_id: str) -> None:
        state = self._displays.get(display_id)
        if state is not None:
            state.dismiss_timer = None
            logger.info(f"⌛ 表示時間が終了: {state.key}")
        self.dismiss(display_id)

    def dismiss(self, display_id: str) -> bool:
        """通知を閉じる（Visible の通知のみ対象）"""
        state = self._displays.get(display_id)
        if state is None or state.phase != DisplayPhase.VISIBLE:
            return False

        state.phase = DisplayPhase.DISMISSING
        self._cancel_timers(state)
        self.renderer.stop_progress(state.element)
        self.renderer.hide(state.element)
        state.exit_timer = self.scheduler.call_later(
            self.settings.EXIT_ANIMATION_MS, self._remove, display_id
        )
        return True

    def _remove(self, display_id: str) -> None:
        state = self._displays.pop(display_id, None)
        if state is None:
            return
        state.phase = DisplayPhase.GONE
        try:
            self.renderer.remove(state.element)
        except Exception:
            logger.exception(f"通知要素の削除に失敗しました: {display_id}")
        self.save_snapshot()

    def handle_swipe(self, display_id: str, delta_x: float) -> bool:
        """横スワイプ（タッチ端末のみ）。閾値を超えたら閉じ、未満なら元に戻す"""
        state = self._displays.get(display_id)
        if not self.touch_device or state is None or state.phase != DisplayPhase.VISIBLE:
            return False
        if abs(delta_x) > self.settings.SWIPE_DISMISS_PX:
            return self.dismiss(display_id)
        self.renderer.snap_back(state.element)
        return False

    def clear_all(self) -> int:
        """表示中の通知をすべて閉じる"""
        visible = [s.display_id for s in self._displays.values() if s.phase == DisplayPhase.VISIBLE]
        for display_id in visible:
            self.dismiss(display_id)
        return len(visible)

    # ============================================
    # ページの表示/非表示
    # ============================================
    def on_visibility_change(self, hidden: bool) -> None:
        if hidden == self.page_hidden:
            return
        self.page_hidden = hidden
        if hidden:
            self._pause_all()
            self.save_snapshot()
        else:
            self._resume_all()

    def _pause_all(self) -> None:
        now = self.scheduler.now()
        for state in self._displays.values():
            if state.phase != DisplayPhase.VISIBLE or state.paused:
                continue
            state.remaining_ms = state.remaining_at(now)
            state.paused = True
            if state.dismiss_timer is not None:
                state.dismiss_timer.cancel()
                state.dismiss_timer = None
            self.renderer.stop_progress(state.element)

    def _resume_all(self) -> None:
        for state in list(self._displays.values()):
            if state.phase != DisplayPhase.VISIBLE or not state.paused:
                continue
            if state.remaining_ms > 0:
                self._start_countdown(state)
            else:
                self.dismiss(state.display_id)

    # ============================================
    # 表示状態の保存と復元
    # ============================================
    def _periodic_snapshot(self) -> None:
        if self.visible_count:
            self.save_snapshot()

    def save_snapshot(self) -> int:
        """表示中の通知を保存（リロード後に復元する）"""
        now = self.scheduler.now()
        entries = []
        for state in self._displays.values():
            if state.phase != DisplayPhase.VISIBLE:
                continue
            remaining = state.remaining_at(now)
            if remaining <= 0:
                continue
            entries.append(
                {
                    "id": state.display_id,
                    "originalPayload": state.payload,
                    "startedAt": now - (state.duration_ms - remaining),
                    "durationMs": state.duration_ms,
                    "remainingMs": remaining,
                }
            )
        if entries:
            self.storage.set_json(ACTIVE_SNAPSHOT_KEY, entries)
        else:
            self.storage.remove_item(ACTIVE_SNAPSHOT_KEY)
        return len(entries)

    def restore_snapshot(self) -> int:
        """
        前回保存した表示状態を読み込み、使える残り時間がある通知を順に再表示する

        保存内容は一度読んだら消去する
        """
        entries = self.storage.get_json(ACTIVE_SNAPSHOT_KEY)
        self.storage.remove_item(ACTIVE_SNAPSHOT_KEY)
        if not isinstance(entries, list):
            return 0

        now = self.scheduler.now()
        scheduled = 0
        for entry in entries:
            try:
                payload = entry["originalPayload"]
                remaining = self._snapshot_remaining(entry, now)
            except (KeyError, TypeError, ValueError):
                logger.warning("⚠️ 保存された通知の形式が不正なため破棄します")
                continue
            if not isinstance(payload, dict):
                continue
            if remaining < self.settings.RESTORE_THRESHOLD_MS:
                logger.info(f"🗑️ 期限切れ間近のため復元しません: {entry.get('id')} ({remaining}ms)")
                continue

            self.scheduler.call_later(
                scheduled * self.settings.RESTORE_STAGGER_MS,
                self.deliver,
                payload,
                DeliverySource.RESTORED,
                remaining,
            )
            scheduled += 1

        if scheduled:
            logger.info(f"♻️ {scheduled}件の通知を復元します")
        return scheduled

    @staticmethod
    def _snapshot_remaining(entry: Dict[str, Any], now: int) -> int:
        remaining = int(entry["remainingMs"])
        started_at = entry.get("startedAt")
        duration = entry.get("durationMs")
        if started_at is not None and duration is not None:
            remaining = min(remaining, int(duration) - (now - int(started_at)))
        return remaining

    # ============================================
    # サーバー通知フィード
    # ============================================
    def record_server_notification(self, payload: Dict[str, Any]) -> None:
        """受信した通知をフィードに追記（期限切れと同一IDは除く）"""
        now = self.scheduler.now()
        feed = [
            item for item in self._read_feed()
            if isinstance(item.get("expiresAt"), int)
            and item["expiresAt"] > now
            and item.get("id") != payload.get("id")
        ]
        feed.append(payload)
        self.storage.set_json(SERVER_FEED_KEY, feed[-SERVER_FEED_LIMIT:])

    def update_server_feed(self, notifications: List[Dict[str, Any]]) -> None:
        """サーバーから取得した有効な通知一覧でフィードを置き換える"""
        self.storage.set_json(SERVER_FEED_KEY, list(notifications)[-SERVER_FEED_LIMIT:])

    def _read_feed(self) -> List[Dict[str, Any]]:
        feed = self.storage.get_json(SERVER_FEED_KEY, default=[])
        if not isinstance(feed, list):
            return []
        return [item for item in feed if isinstance(item, dict)]

    def check_server_feed(self) -> int:
        """フィード上の有効な通知のうち、まだ表示していないものを表示する"""
        now = self.scheduler.now()
        scheduled = 0
        for payload in self._read_feed():
            expires_at = payload.get("expiresAt")
            if not isinstance(expires_at, int) or expires_at <= now:
                continue
            remaining = expires_at - now
            if remaining < self.settings.RESTORE_THRESHOLD_MS:
                continue
            try:
                key = Notification.from_wire(payload, now=now).identity_key
            except (ValidationError, ValueError, TypeError):
                continue
            if self._is_displayed(key) or key in self.recent:
                continue

            self.scheduler.call_later(
                scheduled * SERVER_FEED_STAGGER_MS,
                self.deliver,
                payload,
                DeliverySource.SERVER_FEED,
                remaining,
            )
            scheduled += 1
        return scheduled

    # ============================================
    # 端末通知
    # ============================================
    def enable_device_notifications(self) -> bool:
        """端末通知の許可を求め、許可されたら歓迎メッセージを表示する"""
        if self.fallback is None:
            return False
        if not self.fallback.request_permission():
            return False
        self.scheduler.call_later(self.settings.WELCOME_DELAY_MS, self._welcome)
        return True

    def _welcome(self) -> None:
        now = self.scheduler.now()
        self.deliver(
            {
                "notificationType": NotificationType.SERVICE_ANNOUNCEMENT.value,
                "title": WELCOME_TITLE,
                "message": WELCOME_MESSAGE,
                "priority": Priority.NORMAL.value,
                "timestamp": now,
                "duration": 5000,
            },
            DeliverySource.LOCAL,
        )

    # ============================================
    # 状態参照
    # ============================================
    def phase_of(self, display_id: str) -> DisplayPhase:
        state = self._displays.get(display_id)
        return state.phase if state is not None else DisplayPhase.GONE

    def display_state(self, display_id: str) -> Optional[DisplayState]:
        return self._displays.get(display_id)

    def displays(self) -> List[DisplayState]:
        return list(self._displays.values())

    @property
    def active_count(self) -> int:
        return len(self._displays)

    @property
    def visible_count(self) -> int:
        return sum(1 for s in self._displays.values() if s.phase == DisplayPhase.VISIBLE)
