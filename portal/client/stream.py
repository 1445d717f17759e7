"""
通知ストリームの受信
接続先候補を順に試し、全て失敗したら一定間隔で再試行する
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from portal.client.controller import ClientNotificationController

logger = logging.getLogger(__name__)

# 切り替え時の待ち時間（秒）
NEXT_CANDIDATE_DELAY_SECONDS = 1.0


def parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    """
    `data: {json}` 行をメッセージに変換

    data 行以外（空行・コメント等）は None。JSONが壊れている場合は ValueError
    """
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data:
        return None
    message = json.loads(data)
    if not isinstance(message, dict):
        raise ValueError("stream message must be a JSON object")
    return message


class NotificationStreamClient:
    """
    通知ストリームの購読クライアント

    接続に成功（connected を受信）したら候補の巡回を止め、切断されたら先頭の候補から再接続する。
    """

    def __init__(
        self,
        controller: ClientNotificationController,
        urls: List[str],
        client: httpx.AsyncClient,
        connect_timeout: float = 5.0,
        reconnect_interval: float = 30.0,
        heartbeat_interval: float = 30.0,
    ):
        if not urls:
            raise ValueError("at least one stream URL is required")
        self.controller = controller
        self.urls = list(urls)
        self.client = client
        self.connect_timeout = connect_timeout
        self.reconnect_interval = reconnect_interval
        # ハートビート2回分届かなければ切断とみなす
        self.read_timeout = heartbeat_interval * 2 + connect_timeout
        self.connected = False
        self.connected_url: Optional[str] = None
        self._running = False

    async def run(self) -> None:
        self._running = True
        while self._running:
            was_connected = False
            for url in self.urls:
                if not self._running:
                    return
                was_connected = await self.connect_once(url)
                if was_connected:
                    break
                await asyncio.sleep(NEXT_CANDIDATE_DELAY_SECONDS)

            if not self._running:
                return
            if was_connected:
                logger.info("🔄 ストリームが切断されました。再接続します")
                await asyncio.sleep(NEXT_CANDIDATE_DELAY_SECONDS)
            else:
                logger.warning(f"⚠️ 全ての接続先に接続できません。{self.reconnect_interval}秒後に再試行します")
                await asyncio.sleep(self.reconnect_interval)

    async def connect_once(self, url: str) -> bool:
        """
        1つの接続先からストリームを受信する（切断されるまで戻らない）

        Returns:
            connected メッセージを受信できたか
        """
        logger.info(f"🔌 接続試行: {url}")
        timeout = httpx.Timeout(self.connect_timeout, read=self.read_timeout)
        loop = asyncio.get_running_loop()
        # connected を受信するまでの期限
        deadline = loop.time() + self.connect_timeout
        was_connected = False
        try:
            async with self.client.stream(
                "GET", url, headers={"Accept": "text/event-stream"}, timeout=timeout
            ) as response:
                response.raise_for_status()
                lines = response.aiter_lines()
                while True:
                    try:
                        if was_connected:
                            line = await lines.__anext__()
                        else:
                            line = await asyncio.wait_for(
                                lines.__anext__(), timeout=max(0.0, deadline - loop.time())
                            )
                    except StopAsyncIteration:
                        break
                    try:
                        message = parse_sse_line(line)
                    except ValueError:
                        logger.warning(f"⚠️ 不正なメッセージを無視します: {line[:80]}")
                        continue
                    if message is None:
                        continue
                    if message.get("type") == "connected" and not was_connected:
                        was_connected = True
                        self.connected = True
                        self.connected_url = url
                        logger.info(f"✅ 接続しました: {url}")
                    try:
                        self.controller.handle_stream_message(message)
                    except Exception:
                        logger.exception(f"❌ メッセージの処理に失敗: {message.get('type')}")
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ 接続タイムアウト: {url} ({self.connect_timeout}秒以内に応答なし)")
        except httpx.HTTPError as e:
            logger.warning(f"❌ 接続失敗: {url} ({type(e).__name__})")
        finally:
            self.connected = False
            self.connected_url = None
        return was_connected

    def disconnect(self) -> None:
        self._running = False
        self.connected = False


async def fetch_active_notifications(client: httpx.AsyncClient, api_base_url: str) -> List[Dict[str, Any]]:
    """有効な通知一覧を取得"""
    response = await client.get(f"{api_base_url.rstrip('/')}/api/notifications/active")
    response.raise_for_status()
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError("active notifications response must be a JSON object")
    notifications = body.get("notifications", [])
    if not isinstance(notifications, list):
        raise ValueError("notifications must be a list")
    return [n for n in notifications if isinstance(n, dict)]


async def poll_active_notifications(
    controller: ClientNotificationController,
    client: httpx.AsyncClient,
    api_base_url: str,
    interval: float = 60.0,
) -> None:
    """有効な通知一覧を定期的に取得し、サーバー通知フィードを更新する"""
    while True:
        try:
            notifications = await fetch_active_notifications(client, api_base_url)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ 有効な通知の取得に失敗: {e}")
        else:
            controller.update_server_feed(notifications)
            controller.check_server_feed()
        await asyncio.sleep(interval)
