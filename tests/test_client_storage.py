"""
クライアント側ストレージのテスト
"""

from portal.client.recent import RecentlyShownKeys
from portal.client.storage import RECENT_KEYS_KEY, JsonFileStorage, StorageArea

WINDOW_MS = 5 * 60 * 1000


class TestStorageArea:
    """タブ間共有ストレージテスト"""

    def test_values_are_shared_between_tabs(self):
        """同じ領域のタブは値を共有する"""
        area = StorageArea()
        first, second = area.tab(), area.tab()
        first.set_json("key", {"a": 1})
        assert second.get_json("key") == {"a": 1}
        second.remove_item("key")
        assert first.get_item("key") is None

    def test_change_event_goes_to_other_tabs(self):
        """変更通知は書き込んだタブ以外に届く"""
        area = StorageArea()
        writer, reader = area.tab(), area.tab()
        received = {"writer": [], "reader": []}
        writer.subscribe("channel", received["writer"].append)
        reader.subscribe("channel", received["reader"].append)

        writer.set_json("channel", {"message": "hi"})
        assert received["reader"] == [{"message": "hi"}]
        assert received["writer"] == []

    def test_unchanged_value_does_not_notify(self):
        """同じ値の書き込みでは通知しない"""
        area = StorageArea()
        writer, reader = area.tab(), area.tab()
        received = []
        reader.subscribe("channel", received.append)
        writer.set_json("channel", {"n": 1})
        writer.set_json("channel", {"n": 1})
        writer.remove_item("channel")
        assert received == [{"n": 1}, None]

    def test_unsubscribe(self):
        """購読解除後は通知されない"""
        area = StorageArea()
        writer, reader = area.tab(), area.tab()
        received = []
        unsubscribe = reader.subscribe("channel", received.append)
        unsubscribe()
        writer.set_json("channel", 1)
        assert received == []

    def test_handler_error_does_not_propagate(self):
        """購読者の例外は書き込み側に伝わらない"""
        area = StorageArea()
        writer, reader = area.tab(), area.tab()

        def broken(value):
            raise RuntimeError("boom")

        received = []
        reader.subscribe("channel", broken)
        area.tab().subscribe("channel", received.append)
        writer.set_json("channel", "x")
        assert received == ["x"]

    def test_corrupt_json_returns_default(self):
        """壊れたJSONはデフォルト値"""
        storage = StorageArea().tab()
        storage.set_item("key", "{oops")
        assert storage.get_json("key", default=[]) == []


class TestJsonFileStorage:
    """ファイル永続化ストレージテスト"""

    def test_persists_across_instances(self, tmp_path):
        """別インスタンスから読み込める"""
        path = tmp_path / "storage.json"
        JsonFileStorage(str(path)).set_json("key", ["مرحباً"])
        assert JsonFileStorage(str(path)).get_json("key") == ["مرحباً"]

    def test_remove_item(self, tmp_path):
        """削除"""
        path = tmp_path / "storage.json"
        storage = JsonFileStorage(str(path))
        storage.set_item("key", "1")
        storage.remove_item("key")
        assert JsonFileStorage(str(path)).get_item("key") is None

    def test_corrupt_file_is_ignored(self, tmp_path):
        """壊れたファイルは空として扱う"""
        path = tmp_path / "storage.json"
        path.write_text("not json", encoding="utf-8")
        assert JsonFileStorage(str(path)).get_item("key") is None


class TestRecentlyShownKeys:
    """表示済みキーテスト"""

    def test_keys_expire_after_window(self, scheduler, storage):
        """表示から5分で失効"""
        recent = RecentlyShownKeys(storage, clock=scheduler.now)
        recent.add("k1")
        scheduler.advance(WINDOW_MS - 1)
        assert "k1" in recent
        scheduler.advance(1)
        assert "k1" not in recent

    def test_bounded_to_max_keys(self, scheduler, storage):
        """最大20件、古いものから捨てる"""
        recent = RecentlyShownKeys(storage, clock=scheduler.now)
        for i in range(21):
            recent.add(f"k{i}")
            scheduler.advance(10)
        assert len(recent) == 20
        assert "k0" not in recent
        assert "k20" in recent
        assert len(storage.get_json(RECENT_KEYS_KEY)) == 20

    def test_persisted_with_shown_at(self, scheduler, storage):
        """表示時刻とともに保存される"""
        recent = RecentlyShownKeys(storage, clock=scheduler.now)
        recent.add("k1")
        assert storage.get_json(RECENT_KEYS_KEY) == [{"key": "k1", "shownAt": scheduler.now()}]

    def test_loaded_by_next_instance(self, scheduler, storage):
        """再読み込み後も失効時刻は元の表示時刻から数える"""
        RecentlyShownKeys(storage, clock=scheduler.now).add("k1")
        scheduler.advance(WINDOW_MS - 1000)

        reloaded = RecentlyShownKeys(storage, clock=scheduler.now)
        assert "k1" in reloaded
        scheduler.advance(1000)
        assert "k1" not in reloaded

    def test_expired_entries_are_not_loaded(self, scheduler, storage):
        """失効済みの保存内容は読み込まない"""
        storage.set_json(RECENT_KEYS_KEY, [{"key": "old", "shownAt": scheduler.now() - WINDOW_MS}])
        recent = RecentlyShownKeys(storage, clock=scheduler.now)
        assert "old" not in recent
        assert recent.keys() == []

    def test_invalid_entries_are_ignored(self, scheduler, storage):
        """形式が不正な保存内容は無視"""
        storage.set_json(RECENT_KEYS_KEY, [{"key": 1}, "junk", {"key": "ok", "shownAt": scheduler.now()}])
        assert RecentlyShownKeys(storage, clock=scheduler.now).keys() == ["ok"]
