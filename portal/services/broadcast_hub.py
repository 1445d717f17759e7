"""
ブロードキャストハブ
接続中のストリーム（Server-Sent Events）へ通知・ハートビートを配信する
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from portal.models.notification import now_ms
from portal.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "متصل بخدمة الإشعارات"


class StreamClosedError(Exception):
    """クローズ済みのストリームへの書き込み"""
    pass


class StreamConnection:
    """
    1本のストリーム接続

    送信待ちメッセージをキューで保持し、SSEレスポンス側が順に取り出す。
    キューが溢れた場合は書き込み失敗（asyncio.QueueFull）として扱う。
    """

    def __init__(self, max_pending: int = 100):
        self.id = uuid.uuid4().hex
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, message: Dict[str, Any]) -> None:
        """メッセージを送信キューに積む"""
        if self._closed:
            raise StreamClosedError(f"stream {self.id} is closed")
        self._queue.put_nowait(message)

    def close(self) -> None:
        """接続を閉じる（未送信メッセージは破棄）"""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        # 終端マーカー
        self._queue.put_nowait(None)

    async def messages(self) -> AsyncIterator[Dict[str, Any]]:
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message


def format_sse(message: Dict[str, Any]) -> str:
    """SSEのテキストフレームに変換"""
    return f"data: {json.dumps(message, ensure_ascii=False)}\n\n"


class BroadcastHub:
    """
    接続中ストリームの集合と配信処理

    - 接続は ID -> StreamConnection の辞書で管理（追加・削除 O(1)）
    - 配信中の削除に備え、イテレーションは常にスナップショットに対して行う
    - 書き込みに失敗した接続は即座に登録解除（再送しない）
    """

    def __init__(
        self,
        store: NotificationStore,
        replay_delay: float = 1.0,
        max_pending: int = 100,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Args:
            store: 再送（キャッチアップ）対象を取得する通知ストア
            replay_delay: 接続直後、有効な通知を再送するまでの待ち時間（秒）
            max_pending: 接続ごとの送信待ち上限
            clock: 現在時刻（エポックミリ秒）を返す関数
        """
        self._store = store
        self._connections: Dict[str, StreamConnection] = {}
        self._replay_delay = replay_delay
        self._max_pending = max_pending
        self._clock = clock
        self._replay_handles: Dict[str, asyncio.TimerHandle] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connections(self) -> List[StreamConnection]:
        return list(self._connections.values())

    def open_connection(self) -> StreamConnection:
        """新しい接続を作成して登録"""
        connection = StreamConnection(max_pending=self._max_pending)
        self.register(connection)
        return connection

    def register(self, connection: StreamConnection) -> None:
        """
        接続を登録し、ウェルカムメッセージを送信

        少し待ってから有効な通知を1件ずつ再送し、遅れて接続した端末に追いつかせる。
        """
        self._connections[connection.id] = connection
        logger.info(f"📡 ストリーム接続: {connection.id} (接続数: {self.connection_count})")

        if not self._deliver(connection, {
            "type": "connected",
            "message": WELCOME_MESSAGE,
            "timestamp": self._clock(),
        }):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # イベントループ外（スクリプト等）では即時再送
            self.replay_active(connection)
            return
        self._replay_handles[connection.id] = loop.call_later(
            self._replay_delay, self.replay_active, connection
        )

    def unregister(self, connection: StreamConnection) -> None:
        """接続を登録解除"""
        handle = self._replay_handles.pop(connection.id, None)
        if handle is not None:
            handle.cancel()
        if self._connections.pop(connection.id, None) is not None:
            logger.info(f"📡 ストリーム切断: {connection.id} (接続数: {self.connection_count})")
        connection.close()

    def replay_active(self, connection: StreamConnection) -> int:
        """
        現在有効な通知を1件ずつ接続に再送

        Returns:
            再送した件数
        """
        self._replay_handles.pop(connection.id, None)
        if connection.id not in self._connections:
            return 0

        sent = 0
        for notification in self._store.active_notifications(self._clock()):
            if not self._deliver(connection, {"type": "notification", "data": notification.to_wire()}):
                break
            sent += 1
        if sent:
            logger.info(f"🔁 有効な通知を再送: {connection.id} ({sent}件)")
        return sent

    def broadcast(self, message: Dict[str, Any]) -> int:
        """
        全接続にメッセージを配信

        Returns:
            配信に成功した接続数
        """
        delivered = 0
        for connection in self.connections():
            if self._deliver(connection, message):
                delivered += 1
        return delivered

    def broadcast_notification(self, notification_wire: Dict[str, Any]) -> int:
        delivered = self.broadcast({"type": "notification", "data": notification_wire})
        logger.info(f"📤 通知を配信: {notification_wire.get('id')} → {delivered}クライアント")
        return delivered

    def send_heartbeat(self) -> int:
        """全接続にハートビートを送信"""
        return self.broadcast({"type": "heartbeat", "timestamp": self._clock()})

    def close_all(self) -> None:
        for connection in self.connections():
            self.unregister(connection)

    def _deliver(self, connection: StreamConnection, message: Dict[str, Any]) -> bool:
        """1接続への書き込み。失敗した接続はその場で登録解除"""
        try:
            connection.send(message)
            return True
        except (StreamClosedError, asyncio.QueueFull) as e:
            logger.warning(f"⚠️ ストリームへの書き込み失敗のため切断: {connection.id} ({type(e).__name__})")
            self.unregister(connection)
            return False


async def stream_events(hub: BroadcastHub, connection: StreamConnection) -> AsyncIterator[str]:
    """
    SSEレスポンス本体

    接続が閉じられるかクライアントが切断するまでメッセージを送り続ける
    """
    try:
        async for message in connection.messages():
            yield format_sse(message)
    finally:
        hub.unregister(connection)
