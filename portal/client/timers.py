"""
クライアント側タイマー
単一スレッドの協調スケジューリング（タイマーとイベントコールバックのみ）
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    """キャンセル可能なタイマー"""

    @abstractmethod
    def cancel(self) -> None:
        ...


class RepeatingTimer(TimerHandle):
    """一定間隔で繰り返し実行するタイマー"""

    def __init__(self, scheduler: "Scheduler", interval_ms: int, callback: Callable[..., Any], args: tuple):
        self._scheduler = scheduler
        self._interval_ms = interval_ms
        self._callback = callback
        self._args = args
        self._cancelled = False
        self._current: Optional[TimerHandle] = None
        self._schedule()

    def _schedule(self) -> None:
        self._current = self._scheduler.call_later(self._interval_ms, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            self._callback(*self._args)
        except Exception:
            logger.exception("定期処理でエラーが発生しました")
        if not self._cancelled:
            self._schedule()

    def cancel(self) -> None:
        self._cancelled = True
        if self._current is not None:
            self._current.cancel()


class Scheduler(ABC):
    """時刻（エポックミリ秒）とタイマーを提供する"""

    @abstractmethod
    def now(self) -> int:
        ...

    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...

    def call_every(self, interval_ms: int, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return RepeatingTimer(self, interval_ms, callback, args)


class _AsyncioTimer(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """asyncio イベントループ上のタイマー"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return _AsyncioTimer(self._loop.call_later(max(0, delay_ms) / 1000, callback, *args))
