"""
管理者用 通知送信スクリプト

接続中の全端末へ通知を送信する

使い方:
    python -m portal.scripts.send_notification --type maintenance_alert --message "سيتم قطع الخدمة لمدة 10 دقائق" --duration 600000

環境変数:
    ADMIN_TOKEN  管理者トークン
    NOTIFICATION_SERVER_URL  通知サーバーのURL（デフォルト: http://localhost:3000）
"""
import argparse
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

from portal.models.notification import NotificationType, Priority

DEFAULT_SERVER_URL = "http://localhost:3000"
REQUEST_TIMEOUT_SECONDS = 10


def build_request_body(
    token: str,
    notification_type: str,
    message: Optional[str] = None,
    title: Optional[str] = None,
    priority: str = Priority.NORMAL.value,
    duration: Optional[int] = None,
    display_duration: Optional[int] = None,
) -> Dict[str, Any]:
    """送信APIのリクエストボディを組み立てる（未指定の項目はサーバー側のデフォルト）"""
    body: Dict[str, Any] = {
        "token": token,
        "notificationType": notification_type,
        "priority": priority,
    }
    if message:
        body["message"] = message
    if title:
        body["title"] = title
    if duration:
        body["duration"] = duration
    if display_duration:
        body["displayDuration"] = display_duration
    return body


def send_notification(server_url: str, body: Dict[str, Any]) -> Dict[str, Any]:
    """
    通知を送信

    Raises:
        requests.HTTPError: 401（トークン不正）や400（入力不正）の場合
    """
    response = requests.post(
        f"{server_url.rstrip('/')}/api/notifications/send",
        json=body,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="接続中の全端末へ通知を送信")
    parser.add_argument(
        "--type",
        dest="notification_type",
        default=NotificationType.SERVICE_ANNOUNCEMENT.value,
        help="通知種別（例: maintenance_alert）",
    )
    parser.add_argument("--message", help="本文")
    parser.add_argument("--title", help="タイトル（省略時は種別のデフォルト）")
    parser.add_argument(
        "--priority",
        default=Priority.NORMAL.value,
        choices=[p.value for p in Priority],
    )
    parser.add_argument("--duration", type=int, help="表示時間（ミリ秒）")
    parser.add_argument("--minutes", type=int, help="表示時間（分）")
    parser.add_argument("--server", default=os.getenv("NOTIFICATION_SERVER_URL", DEFAULT_SERVER_URL))
    parser.add_argument("--token", default=os.getenv("ADMIN_TOKEN", ""))
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """メイン処理"""
    args = parse_args(argv)

    print("=" * 60)
    print("📢 通知送信")
    print(f"   実行日時: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"   送信先: {args.server}")
    print(f"   種別: {args.notification_type} / 優先度: {args.priority}")
    print("=" * 60)

    if not args.token:
        print("❌ ADMIN_TOKEN が設定されていません")
        return 1

    body = build_request_body(
        token=args.token,
        notification_type=args.notification_type,
        message=args.message,
        title=args.title,
        priority=args.priority,
        duration=args.duration,
        display_duration=args.minutes,
    )

    try:
        result = send_notification(args.server, body)
    except requests.HTTPError as e:
        print(f"❌ 送信に失敗しました: HTTP {e.response.status_code}")
        return 1
    except requests.RequestException as e:
        print(f"❌ サーバーに接続できません: {e}")
        return 1

    print(f"✅ 送信しました: {result.get('notificationId')}")
    print(f"   通知した端末数: {result.get('clientsNotified')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
