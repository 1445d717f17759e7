"""
FastAPI メインアプリケーション
Hi-Tech Hotspot Portal - 端末間通知サーバー
"""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.encoders import jsonable_encoder

load_dotenv()

from portal.config import Settings, settings as default_settings
from portal.dependencies import get_hub, get_push_registry, get_store
from portal.models.notification import now_ms
from portal.routers.notification import router as notification_router
from portal.routers.push_notification import router as push_router
from portal.schemas.notification import StatusResponse
from portal.services.broadcast_hub import BroadcastHub
from portal.services.notification_service import NotificationService
from portal.services.notification_store import NotificationStore
from portal.services.push_registry import PushSubscriptionRegistry
from portal.services.scheduler_service import (
    create_scheduler,
    get_scheduler_status,
    start_scheduler,
    stop_scheduler,
)
from portal.services.webpush_service import WebPushService

# ログ設定
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class RequestLoggingMiddleware:
    """リクエストのメソッド・パスをログ出力（ストリーミング応答はそのまま通す）"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            logger.info(f"{scope['method']} {scope['path']}")
        await self.app(scope, receive, send)


# ============================================
# ライフサイクル管理
# ============================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションの起動・終了処理"""
    logger.info("🚀 Hi-Tech Notification Server starting...")
    logger.info("📡 SSE endpoint: /notifications/stream")
    logger.info("🔔 Send notifications to: /api/notifications/send")

    if not app.state.push_registry.push_service.configured:
        logger.warning("⚠️ VAPID鍵が未設定のため、プッシュ通知は送信されません")

    start_scheduler(app.state.scheduler)

    yield

    logger.info("📴 Server shutting down...")
    stop_scheduler(app.state.scheduler)
    app.state.hub.close_all()


# ============================================
# FastAPI アプリケーション
# ============================================
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    アプリケーションを作成

    ストア・ハブ・購読レジストリはプロセスごとに1つ作成し app.state に保持する
    """
    settings = settings or default_settings

    app = FastAPI(
        title=f"{settings.PROJECT_NAME} API",
        description="ホットスポットのログインページ向け 端末間通知サーバー",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    store = NotificationStore(limit=settings.NOTIFICATION_STORE_LIMIT)
    hub = BroadcastHub(
        store,
        replay_delay=settings.REPLAY_DELAY_SECONDS,
        max_pending=settings.STREAM_QUEUE_SIZE,
    )
    push_service = WebPushService(
        public_key=settings.VAPID_PUBLIC_KEY,
        private_key=settings.VAPID_PRIVATE_KEY,
        claims_email=settings.VAPID_CLAIMS_EMAIL,
    )

    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.store = store
    app.state.hub = hub
    app.state.push_registry = PushSubscriptionRegistry(push_service)
    app.state.notification_service = NotificationService(
        store, hub, default_duration_ms=settings.DEFAULT_NOTIFICATION_DURATION_MS
    )
    app.state.scheduler = create_scheduler(
        hub,
        store,
        heartbeat_seconds=settings.HEARTBEAT_INTERVAL_SECONDS,
        cleanup_seconds=settings.CLEANUP_INTERVAL_SECONDS,
    )

    # CORS設定（ホットスポット内の全端末からアクセスされる）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cache-Control"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """不正なJSON・入力値は400で返す（保存・配信はしない）"""
        logger.warning(f"不正なリクエスト: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({"detail": "Invalid JSON", "errors": exc.errors()}),
        )

    # ルータ登録
    app.include_router(notification_router)
    app.include_router(push_router)

    # ============================================
    # 基本エンドポイント
    # ============================================
    @app.get("/api/status", response_model=StatusResponse)
    async def server_status(
        request: Request,
        store: NotificationStore = Depends(get_store),
        hub: BroadcastHub = Depends(get_hub),
        registry: PushSubscriptionRegistry = Depends(get_push_registry),
    ):
        """サーバー状態（接続数・有効通知数・稼働時間）"""
        return StatusResponse(
            status="running",
            connectedClients=hub.connection_count,
            activeNotifications=len(store.active_notifications()),
            storedNotifications=len(store),
            pushSubscribers=len(registry),
            uptime=round(time.monotonic() - request.app.state.started_at, 3),
            timestamp=now_ms(),
            jobs=get_scheduler_status(request.app.state.scheduler)["jobs"],
        )

    @app.options("/{path:path}", include_in_schema=False)
    async def options_ok(path: str):
        """プリフライト以外のOPTIONSも200で返す"""
        return Response(status_code=status.HTTP_200_OK)

    @app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
    async def api_not_found(path: str):
        """未定義のAPIは404"""
        raise HTTPException(status_code=404, detail="API endpoint not found")

    # ============================================
    # 静的ファイル（ログインページ等）
    # ============================================
    static_dir = Path(settings.STATIC_DIR)

    @app.get("/", include_in_schema=False)
    async def login_page():
        page = static_dir / settings.LOGIN_PAGE
        if not page.is_file():
            raise HTTPException(status_code=404, detail="File Not Found")
        return FileResponse(page)

    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir), name="static")
    else:
        logger.warning(f"⚠️ 静的ファイルディレクトリが見つかりません: {static_dir}")

    return app


app = create_app()


# ============================================
# 開発サーバー起動
# ============================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portal.main:app", host="0.0.0.0", port=3000, reload=True, log_level="info"
    )
