"""
通知の表示内容のテスト
"""

from datetime import datetime

from portal.client.display import (
    DeliverySource,
    build_view,
    format_duration_label,
    format_time_label,
)
from portal.models.notification import Notification, Priority


def local_ms(hour, minute, second):
    return int(datetime(2024, 1, 1, hour, minute, second).timestamp() * 1000)


class TestTimeLabel:
    """時刻ラベルテスト"""

    def test_morning(self):
        """午前"""
        assert format_time_label(local_ms(9, 5, 7)) == "9:05:07 صباحاً"

    def test_afternoon(self):
        """午後"""
        assert format_time_label(local_ms(15, 30, 0)) == "3:30:00 مساءً"

    def test_midnight_and_noon(self):
        """0時と12時は12と表記"""
        assert format_time_label(local_ms(0, 0, 1)) == "12:00:01 صباحاً"
        assert format_time_label(local_ms(12, 0, 0)) == "12:00:00 مساءً"

    def test_fallback(self):
        """時刻が無い・解釈できない場合は「今」"""
        assert format_time_label(None) == "الآن"
        assert format_time_label(10 ** 20) == "الآن"


class TestBuildView:
    """表示内容テスト"""

    def test_default_title_and_icon(self):
        """タイトルが空なら種別のデフォルト"""
        notification = Notification(notification_type="maintenance_alert", created_at=local_ms(10, 0, 0))
        view = build_view("d1", notification, 5000)
        assert view.icon == "🔧"
        assert view.title == "صيانة النظام"
        assert view.badge is None
        assert view.duration_label == "5 دقيقة"

    def test_unknown_type(self):
        """未知の種別は汎用表示"""
        notification = Notification(notification_type="future_type", title="x", created_at=local_ms(10, 0, 0))
        view = build_view("d1", notification, 5000)
        assert view.icon == "🔔"
        assert view.title == "x"

    def test_unknown_type_default_title(self):
        """未知の種別でタイトルが空なら汎用タイトル"""
        notification = Notification(notification_type="future_type", created_at=local_ms(10, 0, 0))
        assert build_view("d1", notification, 5000).title == "إشعار"

    def test_badges(self):
        """復元・フィード経由はバッジを付ける"""
        notification = Notification(created_at=local_ms(10, 0, 0), priority=Priority.URGENT)
        assert build_view("d1", notification, 5000, DeliverySource.RESTORED).badge == "مُستعاد"
        assert build_view("d1", notification, 5000, DeliverySource.SERVER_FEED).badge == "من الإدارة"
        assert build_view("d1", notification, 5000, DeliverySource.STREAM).badge is None

    def test_duration_label(self):
        """分数ラベル"""
        assert format_duration_label(10) == "10 دقيقة"
