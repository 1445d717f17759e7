"""Application configuration"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Hi-Tech Hotspot Portal"
    VERSION: str = "1.0.0"

    # admin (shared secret)
    ADMIN_TOKEN: str = "change-me-admin-token"

    # web push (VAPID)
    VAPID_PUBLIC_KEY: str = ""
    VAPID_PRIVATE_KEY: str = ""
    VAPID_CLAIMS_EMAIL: str = "mailto:admin@hitech.net"

    # notifications
    NOTIFICATION_STORE_LIMIT: int = 10
    DEFAULT_NOTIFICATION_DURATION_MS: int = 5 * 60 * 1000
    HEARTBEAT_INTERVAL_SECONDS: int = 30
    CLEANUP_INTERVAL_SECONDS: int = 5 * 60
    REPLAY_DELAY_SECONDS: float = 1.0
    STREAM_QUEUE_SIZE: int = 100

    # http
    CORS_ORIGINS: List[str] = ["*"]
    STATIC_DIR: str = "public"
    LOGIN_PAGE: str = "login.html"

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


class ClientSettings(BaseSettings):
    """通知クライアント（ポータル端末側）の設定"""

    STREAM_URLS: List[str] = [
        "http://localhost:3000/notifications/stream",
        "http://127.0.0.1:3000/notifications/stream",
        "http://2.2.2.2:3000/notifications/stream",
    ]
    API_BASE_URL: str = "http://localhost:3000"
    STORAGE_PATH: str = ".portal_client_storage.json"
    TOUCH_DEVICE: bool = False

    # reconnection
    CONNECT_TIMEOUT_SECONDS: float = 5.0
    RECONNECT_INTERVAL_SECONDS: float = 30.0
    FEED_POLL_INTERVAL_SECONDS: float = 60.0

    # display
    MAX_VISIBLE_DESKTOP: int = 5
    MAX_VISIBLE_TOUCH: int = 3
    RESTORE_THRESHOLD_MS: int = 1000
    RESTORE_STAGGER_MS: int = 100
    EXIT_ANIMATION_MS: int = 400
    SNAPSHOT_INTERVAL_MS: int = 30 * 1000
    FEED_CHECK_INTERVAL_MS: int = 15 * 1000
    DEDUP_WINDOW_MS: int = 5 * 60 * 1000
    DEDUP_MAX_KEYS: int = 20
    SWIPE_DISMISS_PX: int = 100
    FALLBACK_DELAY_MS: int = 100
    WELCOME_DELAY_MS: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="PORTAL_CLIENT_", case_sensitive=True, extra="ignore"
    )


settings = Settings()
