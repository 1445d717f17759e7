"""
通知送信スクリプトのテスト
"""

from unittest.mock import MagicMock, patch

import requests

from portal.scripts.send_notification import build_request_body, main


class TestSendNotificationScript:
    """通知送信スクリプトテスト"""

    def test_build_request_body(self):
        """指定した項目のみ含める"""
        body = build_request_body(
            token="secret",
            notification_type="maintenance_alert",
            message="down",
            duration=600000,
        )
        assert body == {
            "token": "secret",
            "notificationType": "maintenance_alert",
            "priority": "normal",
            "message": "down",
            "duration": 600000,
        }

    def test_main_posts_to_send_endpoint(self):
        """送信APIにPOSTする"""
        response = MagicMock()
        response.json.return_value = {"success": True, "notificationId": "n1", "clientsNotified": 2}
        with patch("portal.scripts.send_notification.requests.post", return_value=response) as post:
            code = main(["--token", "secret", "--server", "http://portal:3000", "--minutes", "10"])

        assert code == 0
        assert post.call_args.args[0] == "http://portal:3000/api/notifications/send"
        assert post.call_args.kwargs["json"]["displayDuration"] == 10

    def test_main_without_token(self):
        """トークンが無ければ送信しない"""
        with patch("portal.scripts.send_notification.requests.post") as post:
            assert main(["--token", ""]) == 1
        post.assert_not_called()

    def test_main_unauthorized(self):
        """401の場合は失敗"""
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError(response=MagicMock(status_code=401))
        with patch("portal.scripts.send_notification.requests.post", return_value=response):
            assert main(["--token", "wrong"]) == 1
