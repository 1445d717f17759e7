"""
ブロードキャストハブのテスト
"""

import asyncio
import json

from portal.models.notification import Notification
from portal.services.broadcast_hub import (
    WELCOME_MESSAGE,
    BroadcastHub,
    StreamClosedError,
    StreamConnection,
    format_sse,
    stream_events,
)
from portal.services.notification_store import NotificationStore

NOW = 1_700_000_000_000


class RecordingConnection(StreamConnection):
    """送信内容を記録する接続"""

    def __init__(self, fail=False):
        super().__init__()
        self.sent = []
        self.fail = fail

    def send(self, message):
        if self.fail:
            raise StreamClosedError("broken pipe")
        super().send(message)
        self.sent.append(message)


def make_hub(store=None, **kwargs):
    kwargs.setdefault("clock", lambda: NOW)
    return BroadcastHub(store or NotificationStore(clock=lambda: NOW), **kwargs)


def make_notification(index, duration_ms=60000):
    return Notification(id=f"n{index}", created_at=NOW, duration_ms=duration_ms)


class TestRegister:
    """接続登録テスト"""

    def test_register_sends_welcome(self):
        """登録直後に connected メッセージを送る"""
        hub = make_hub()
        connection = RecordingConnection()
        hub.register(connection)

        assert hub.connection_count == 1
        assert connection.sent[0] == {"type": "connected", "message": WELCOME_MESSAGE, "timestamp": NOW}

    def test_replay_after_delay(self):
        """登録から少し待って有効な通知を1件ずつ再送する"""
        store = NotificationStore(clock=lambda: NOW)
        store.submit(make_notification(1))
        store.submit(Notification(id="n2", created_at=NOW - 10, duration_ms=5))
        store.submit(make_notification(3))
        hub = make_hub(store, replay_delay=0.01)

        async def scenario():
            connection = RecordingConnection()
            hub.register(connection)
            # 待つ前は welcome のみ
            assert len(connection.sent) == 1
            await asyncio.sleep(0.05)
            return connection

        connection = asyncio.run(scenario())
        replayed = [m["data"]["id"] for m in connection.sent if m["type"] == "notification"]
        assert replayed == ["n1", "n3"]

    def test_replay_is_cancelled_on_unregister(self):
        """再送前に切断された接続には再送しない"""
        store = NotificationStore(clock=lambda: NOW)
        store.submit(make_notification(1))
        hub = make_hub(store, replay_delay=0.01)

        async def scenario():
            connection = RecordingConnection()
            hub.register(connection)
            hub.unregister(connection)
            await asyncio.sleep(0.05)
            return connection

        connection = asyncio.run(scenario())
        assert [m["type"] for m in connection.sent] == ["connected"]
        assert hub.connection_count == 0

    def test_register_outside_event_loop_replays_immediately(self):
        """イベントループ外では即時再送"""
        store = NotificationStore(clock=lambda: NOW)
        store.submit(make_notification(1))
        hub = make_hub(store)
        connection = RecordingConnection()
        hub.register(connection)
        assert [m["type"] for m in connection.sent] == ["connected", "notification"]


class TestBroadcast:
    """配信テスト"""

    def test_broadcast_to_all_connections(self):
        """全接続に同じメッセージを配信"""
        hub = make_hub()
        connections = [RecordingConnection() for _ in range(3)]
        for connection in connections:
            hub.register(connection)

        delivered = hub.broadcast_notification(make_notification(1).to_wire())
        assert delivered == 3
        for connection in connections:
            assert connection.sent[-1]["type"] == "notification"
            assert connection.sent[-1]["data"]["id"] == "n1"

    def test_failed_connection_is_dropped(self):
        """書き込みに失敗した接続は登録解除され、他の接続への配信は続く"""
        hub = make_hub()
        healthy = RecordingConnection()
        hub.register(healthy)
        broken = RecordingConnection()
        hub.register(broken)
        broken.fail = True
        last = RecordingConnection()
        hub.register(last)

        delivered = hub.broadcast({"type": "notification", "data": {"id": "x"}})

        assert delivered == 2
        assert hub.connection_count == 2
        assert broken.closed
        assert healthy.sent[-1]["data"]["id"] == "x"
        assert last.sent[-1]["data"]["id"] == "x"

    def test_full_queue_counts_as_failure(self):
        """送信待ちが上限を超えた接続は切断"""
        hub = make_hub(max_pending=2)
        connection = hub.open_connection()
        # welcome + 再送（0件）で1件、もう1件で上限
        assert hub.broadcast({"type": "heartbeat", "timestamp": NOW}) == 1
        assert hub.broadcast({"type": "heartbeat", "timestamp": NOW}) == 0
        assert connection.closed
        assert hub.connection_count == 0

    def test_heartbeat(self):
        """ハートビートは全接続に送られる"""
        hub = make_hub()
        connection = RecordingConnection()
        hub.register(connection)
        assert hub.send_heartbeat() == 1
        assert connection.sent[-1] == {"type": "heartbeat", "timestamp": NOW}

    def test_close_all(self):
        """全接続を閉じる"""
        hub = make_hub()
        connections = [RecordingConnection() for _ in range(2)]
        for connection in connections:
            hub.register(connection)
        hub.close_all()
        assert hub.connection_count == 0
        assert all(c.closed for c in connections)

    def test_send_after_close_raises(self):
        """閉じた接続への書き込みは StreamClosedError"""
        connection = StreamConnection()
        connection.close()
        try:
            connection.send({"type": "heartbeat"})
        except StreamClosedError:
            pass
        else:
            raise AssertionError("StreamClosedError was not raised")


class TestStreamEvents:
    """SSEレスポンステスト"""

    def test_format_sse(self):
        """data: {json} の1フレーム"""
        frame = format_sse({"type": "connected", "message": WELCOME_MESSAGE})
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"type": "connected", "message": WELCOME_MESSAGE}
        # アラビア語はエスケープしない
        assert WELCOME_MESSAGE in frame

    def test_stream_events_yields_frames_and_unregisters(self):
        """接続が閉じられるまでフレームを送り、終了時に登録解除"""
        hub = make_hub(replay_delay=10)

        async def scenario():
            connection = hub.open_connection()
            hub.send_heartbeat()
            frames = []
            async for frame in stream_events(hub, connection):
                frames.append(frame)
                if len(frames) == 2:
                    hub.unregister(connection)
            return frames

        frames = asyncio.run(scenario())
        assert [json.loads(f[6:])["type"] for f in frames] == ["connected", "heartbeat"]
        assert hub.connection_count == 0
