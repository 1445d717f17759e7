"""
通知クライアントの実行

使い方:
    python -m portal.client
"""

import asyncio
import logging
from typing import Optional

import httpx
from dotenv import load_dotenv

from portal.client.controller import ClientNotificationController
from portal.client.fallback import DeliveryFallbackChannel, LoggingNotifier
from portal.client.renderer import ConsoleRenderer
from portal.client.storage import JsonFileStorage
from portal.client.stream import NotificationStreamClient, poll_active_notifications
from portal.client.timers import AsyncioScheduler
from portal.config import ClientSettings

logger = logging.getLogger(__name__)


async def run_client(settings: Optional[ClientSettings] = None) -> None:
    settings = settings or ClientSettings()
    scheduler = AsyncioScheduler()
    storage = JsonFileStorage(settings.STORAGE_PATH)
    controller = ClientNotificationController(
        ConsoleRenderer(),
        scheduler,
        storage,
        settings=settings,
        fallback=DeliveryFallbackChannel(LoggingNotifier(), scheduler, touch_device=settings.TOUCH_DEVICE),
    )

    restored = controller.start()
    logger.info(f"🚀 通知クライアント起動（復元予約: {restored}件）")
    controller.enable_device_notifications()

    async with httpx.AsyncClient() as client:
        stream = NotificationStreamClient(
            controller,
            settings.STREAM_URLS,
            client,
            connect_timeout=settings.CONNECT_TIMEOUT_SECONDS,
            reconnect_interval=settings.RECONNECT_INTERVAL_SECONDS,
        )
        tasks = [
            asyncio.create_task(stream.run()),
            asyncio.create_task(
                poll_active_notifications(
                    controller, client, settings.API_BASE_URL, settings.FEED_POLL_INTERVAL_SECONDS
                )
            ),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            stream.disconnect()
            for task in tasks:
                task.cancel()
            controller.stop()
            logger.info("📴 通知クライアント停止")


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    try:
        asyncio.run(run_client())
    except KeyboardInterrupt:
        logger.info("中断されました")


if __name__ == "__main__":
    main()
