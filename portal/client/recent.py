"""
最近表示した通知キー
一定時間内に同じ通知を二度表示しないための記録（ストレージに永続化）
"""

import logging
from typing import Callable, List

from cachetools import TLRUCache

from portal.client.storage import RECENT_KEYS_KEY, BrowserStorage

logger = logging.getLogger(__name__)


class RecentlyShownKeys:
    """
    表示済みキーの集合

    各キーは表示時刻から window_ms 経過で失効し、max_keys を超えると古いものから捨てる。
    他タブやリロード前の記録もストレージ経由で取り込む。
    """

    def __init__(
        self,
        storage: BrowserStorage,
        clock: Callable[[], int],
        window_ms: int = 5 * 60 * 1000,
        max_keys: int = 20,
    ):
        self._storage = storage
        self.window_ms = window_ms
        self._cache: TLRUCache = TLRUCache(
            maxsize=max_keys,
            ttu=lambda key, shown_at, now: shown_at + window_ms,
            timer=clock,
        )
        self._merge_persisted()

    def _merge_persisted(self) -> None:
        entries = self._storage.get_json(RECENT_KEYS_KEY, default=[])
        if not isinstance(entries, list):
            return
        valid = []
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get("key"), str) and isinstance(entry.get("shownAt"), int):
                valid.append(entry)
        for entry in sorted(valid, key=lambda e: e["shownAt"]):
            if entry["key"] not in self._cache:
                self._cache[entry["key"]] = entry["shownAt"]

    def _persist(self) -> None:
        with self._cache.timer as now:
            self._cache.expire(now)
            entries = [{"key": key, "shownAt": self._cache[key]} for key in list(self._cache)]
        self._storage.set_json(RECENT_KEYS_KEY, entries)

    def __contains__(self, key: str) -> bool:
        self._merge_persisted()
        return key in self._cache

    def add(self, key: str) -> None:
        with self._cache.timer as now:
            self._cache[key] = now
        self._persist()

    def keys(self) -> List[str]:
        with self._cache.timer as now:
            self._cache.expire(now)
            return list(self._cache)

    def __len__(self) -> int:
        return len(self.keys())
