import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from db import close_pool
from errors import MarketplaceError
from logging_config import configure_logging
from routes.auth import router as auth_router
from routes.gigs import router as gigs_router
from routes.messages import router as messages_router
from routes.orders import router as orders_router
from routes.realtime import router as realtime_router
from routes.reviews import router as reviews_router
from routes.users import router as users_router
from utils import UPLOAD_ROOT, setup_upload_directories

logger = structlog.get_logger(__name__)


# --- 0. 設定 ---
CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173")
INIT_DB_ON_STARTUP = os.getenv("INIT_DB_ON_STARTUP", "true").lower() in ("1", "true", "yes")


# --- 1. 啟動 / 關閉 ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    # 每次伺服器啟動時，自動檢查並建立資料表，不用手動去資料庫下 SQL 指令
    if INIT_DB_ON_STARTUP:
        from init_db import init_database

        init_database()

    logger.info("server_started", client_url=CLIENT_URL)
    yield
    await close_pool()
    logger.info("server_stopped")


# --- 2. 建立應用程式 ---
app = FastAPI(title="Gig Marketplace API", lifespan=lifespan)

# 前端 (React dev server) 跟 API 不同網域，需要開 CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- 3. 掛載上傳檔案目錄 ---
# 讓聊天附件可以透過 URL 被讀取，例如 /uploads/attachments/...
setup_upload_directories()
app.mount("/uploads", StaticFiles(directory=UPLOAD_ROOT), name="uploads")


# --- 4. 錯誤處理：全部統一成 {"success": false, "message": "..."} ---
@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # 只回第一個錯誤，例如 "body.rating: Input should be less than or equal to 5"
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg', 'Invalid input')}" if location else first.get("msg")
    else:
        message = "Invalid input"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"success": False, "message": "Something went wrong!"})


# --- 5. 註冊各個功能的路由 (Router)，不同功能拆到不同檔案，避免 main.py 太長 ---
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(gigs_router, prefix="/api/gigs", tags=["gigs"])
app.include_router(orders_router, prefix="/api/orders", tags=["orders"])
app.include_router(reviews_router, prefix="/api/reviews")
app.include_router(messages_router, prefix="/api/messages", tags=["messages"])
app.include_router(realtime_router)  # WebSocket: /ws


@app.get("/api/health")
async def health():
    return {"success": True, "status": "OK"}
