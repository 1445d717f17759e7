"""
テスト用の共通設定・フィクスチャ
"""

import itertools
import os

import pytest
from fastapi.testclient import TestClient

# テスト用の環境変数を設定（portal.mainをインポートする前に設定）
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")

from portal.client.controller import ClientNotificationController
from portal.client.renderer import NotificationRenderer
from portal.client.storage import StorageArea
from portal.client.timers import Scheduler, TimerHandle
from portal.config import ClientSettings, Settings
from portal.main import create_app

ADMIN_TOKEN = "test-admin-token"
START_TIME_MS = 1_700_000_000_000


# ============================================
# サーバー
# ============================================
@pytest.fixture
def static_dir(tmp_path):
    """ログインページを置いた静的ファイルディレクトリ"""
    directory = tmp_path / "public"
    directory.mkdir()
    (directory / "login.html").write_text("<html><body>login</body></html>", encoding="utf-8")
    return directory


@pytest.fixture
def test_settings(static_dir):
    return Settings(
        ADMIN_TOKEN=ADMIN_TOKEN,
        VAPID_PUBLIC_KEY="test-public-key",
        VAPID_PRIVATE_KEY="test-private-key",
        STATIC_DIR=str(static_dir),
        REPLAY_DELAY_SECONDS=0.01,
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    """テスト用のAPIクライアント"""
    with TestClient(app) as test_client:
        yield test_client


# ============================================
# クライアント（仮想時計）
# ============================================
class VirtualTimer(TimerHandle):
    def __init__(self, due: int, seq: int, callback, args):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler(Scheduler):
    """advance() で時間を進めるテスト用スケジューラー"""

    def __init__(self, start: int = START_TIME_MS):
        self._now = start
        self._timers = []
        self._seq = itertools.count()

    def now(self) -> int:
        return self._now

    def call_later(self, delay_ms, callback, *args) -> TimerHandle:
        timer = VirtualTimer(self._now + max(0, int(delay_ms)), next(self._seq), callback, args)
        self._timers.append(timer)
        return timer

    def advance(self, ms: int = 0) -> None:
        target = self._now + ms
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._timers.remove(timer)
            self._now = timer.due
            timer.callback(*timer.args)
        self._now = target
        self._timers = [t for t in self._timers if not t.cancelled]

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)


class RecordingRenderer(NotificationRenderer):
    """描画操作を記録する"""

    def __init__(self):
        self.views = {}
        self.events = []

    def mount(self, view):
        self.views[view.display_id] = view
        self.events.append(("mount", view.display_id))
        return view.display_id

    def start_progress(self, element, remaining_ms, duration_ms):
        self.events.append(("progress", element, remaining_ms))

    def stop_progress(self, element):
        self.events.append(("stop_progress", element))

    def set_emphasis(self, element, priority):
        self.events.append(("emphasis", element, priority.value))

    def clear_emphasis(self, element):
        self.events.append(("clear_emphasis", element))

    def hide(self, element):
        self.events.append(("hide", element))

    def remove(self, element):
        self.events.append(("remove", element))

    def snap_back(self, element):
        self.events.append(("snap_back", element))

    def count(self, kind):
        return sum(1 for event in self.events if event[0] == kind)


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def storage_area():
    return StorageArea()


@pytest.fixture
def storage(storage_area):
    return storage_area.tab()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def client_settings():
    return ClientSettings()


@pytest.fixture
def make_controller(scheduler, storage, client_settings):
    """コントローラを作成（タブ・端末種別などを上書き可能）"""

    def factory(**kwargs):
        kwargs.setdefault("storage", storage)
        kwargs.setdefault("renderer", RecordingRenderer())
        kwargs.setdefault("settings", client_settings)
        return ClientNotificationController(scheduler=scheduler, **kwargs)

    return factory


@pytest.fixture
def controller(scheduler, storage, renderer, client_settings):
    return ClientNotificationController(renderer, scheduler, storage, settings=client_settings)


@pytest.fixture
def payload(scheduler):
    """通知ペイロードを作成"""

    def factory(notification_id="n1", duration=5000, **overrides):
        data = {
            "id": notification_id,
            "notificationType": "service_announcement",
            "title": "",
            "message": "test",
            "priority": "normal",
            "timestamp": scheduler.now(),
            "duration": duration,
        }
        data.update(overrides)
        return data

    return factory
