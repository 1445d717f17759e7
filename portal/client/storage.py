"""
クライアント側ストレージ
ブラウザの localStorage 相当（キー/文字列値）と、タブ間の変更通知
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# ストレージキー
ACTIVE_SNAPSHOT_KEY = "hitech_active_notifications"
RECENT_KEYS_KEY = "hitech_recent_notifications"
SERVER_FEED_KEY = "server_notifications"
BROADCAST_KEY = "hitech_broadcast_notification"

ChangeHandler = Callable[[Optional[Any]], None]


class BrowserStorage(ABC):
    """
    キー/値ストレージ

    値は文字列で保存し、JSONの読み書きは get_json / set_json を使う。
    壊れたJSONは未保存として扱う。
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    def subscribe(self, key: str, handler: ChangeHandler) -> Callable[[], None]:
        """他タブでの変更を購読（単一タブのストレージでは通知は発生しない）"""
        return lambda: None

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"⚠️ ストレージの値が不正なため無視します: {key}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))


class StorageArea:
    """
    同一オリジンのタブで共有されるストレージ領域

    tab() で作成したビューから書き込むと、書き込んだタブ以外の購読者に通知される
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._handlers: List[Tuple["TabStorage", str, ChangeHandler]] = []

    def tab(self) -> "TabStorage":
        return TabStorage(self)

    def _write(self, source: "TabStorage", key: str, value: Optional[str]) -> None:
        previous = self._data.get(key)
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        if previous == value:
            return

        decoded = None
        if value is not None:
            try:
                decoded = json.loads(value)
            except ValueError:
                decoded = value
        for tab, handler_key, handler in list(self._handlers):
            if tab is source or handler_key != key:
                continue
            try:
                handler(decoded)
            except Exception:
                logger.exception(f"ストレージ変更の処理でエラーが発生しました: {key}")

    def _add_handler(self, tab: "TabStorage", key: str, handler: ChangeHandler) -> Callable[[], None]:
        entry = (tab, key, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe


class TabStorage(BrowserStorage):
    """StorageArea に対する1タブ分のビュー"""

    def __init__(self, area: StorageArea):
        self._area = area

    def get_item(self, key: str) -> Optional[str]:
        return self._area._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._area._write(self, key, value)

    def remove_item(self, key: str) -> None:
        self._area._write(self, key, None)

    def subscribe(self, key: str, handler: ChangeHandler) -> Callable[[], None]:
        return self._area._add_handler(self, key, handler)


class JsonFileStorage(BrowserStorage):
    """JSONファイルに永続化するストレージ（プロセス再起動をまたいで保持）"""

    def __init__(self, path: str):
        self.path = Path(path)
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ ストレージファイルを読み込めません: {self.path} ({e})")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        try:
            self.path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.error(f"❌ ストレージファイルへの書き込みに失敗: {self.path} ({e})")

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()
