"""
Markdown Notes FastAPI 應用程式主入口

雲端筆記應用：Supabase 負責身分驗證與資料儲存，
本服務提供速率限制、格式驗證與以使用者為範圍的筆記 / 版本 API
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.auth import router as auth_router
from app.api.notes import router as notes_router
from app.api.versions import router as versions_router
from app.core.config import settings
from app.db.supabase_config import supabase_config
from app.lib.rate_limit import ALL_LIMITERS, sweep_forever
from app.middleware.error_handler import register_error_handlers

# 配置日誌
logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    應用程式生命週期管理

    啟動時開始定期清理速率限制計數，關閉時停止
    """
    logger.info("🚀 Markdown Notes API 正在啟動...")
    if not supabase_config.is_configured():
        logger.error("❌ 缺少必要環境變數：SUPABASE_URL 與 SUPABASE_ANON_KEY")

    sweeper = asyncio.create_task(sweep_forever(ALL_LIMITERS))
    logger.info(f"🧹 速率限制清理任務已啟動（每 {settings.RATE_LIMIT_SWEEP_INTERVAL_SEC}s）")

    yield

    logger.info("🔄 Markdown Notes API 正在關閉...")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper


# 建立 FastAPI 應用程式
app = FastAPI(
    title="Markdown Notes API",
    description="雲端 Markdown 筆記：自動儲存、版本快照、軟刪除與復原",
    version="0.1.0",
    lifespan=lifespan
)

# CORS 設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)

register_error_handlers(app)

# 註冊路由
app.include_router(auth_router)
app.include_router(notes_router)
app.include_router(versions_router)


@app.get("/api/health")
async def health_check():
    """健康檢查端點"""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/metrics")
async def metrics():
    """Prometheus 監控指標端點"""
    try:
        return Response(
            content=generate_latest(),
            media_type=CONTENT_TYPE_LATEST,
            headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
        )
    except Exception as e:
        logger.error(f"Failed to generate metrics: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate metrics")


# 前端靜態檔案（存在時才掛載，必須放在所有 API 路由之後）
_public_dir = Path(settings.PUBLIC_DIR)
if _public_dir.is_dir():
    app.mount("/", StaticFiles(directory=_public_dir, html=True), name="public")
    logger.info(f"📁 已掛載前端靜態檔案: {_public_dir.resolve()}")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=not settings.is_production(),
    )
