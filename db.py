# db.py
import os
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, HTTPException
from psycopg_pool import AsyncConnectionPool
from psycopg.rows import dict_row

from repository import MarketplaceRepository

logger = structlog.get_logger(__name__)

# --- 資料庫設定 ---
# 從環境變數讀取，沒設定就用本機開發用的預設值
DEFAULT_DB = os.getenv("DB_NAME", "gig_marketplace")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))

# 組合連線字串 (Connection String)；也可以直接給完整的 DATABASE_URL
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"dbname={DEFAULT_DB} user={DB_USER} password={DB_PASSWORD} host={DB_HOST} port={DB_PORT}",
)

# 宣告全域連線池變數，預設為 None
_pool: AsyncConnectionPool | None = None


async def _get_pool() -> AsyncConnectionPool:
    global _pool

    # Lazy Loading: 第一次被呼叫時才建立連線池
    if _pool is None:
        logger.info("db_pool_initializing")
        _pool = AsyncConnectionPool(
            conninfo=DATABASE_URL,
            kwargs={"row_factory": dict_row},  # 讓查詢結果變成 dict (record['id']) 而不是 tuple
            open=False,
        )
        try:
            await _pool.open()
            logger.info("db_pool_opened")
        except Exception:
            logger.exception("db_pool_open_failed")
            _pool = None
            raise

    if _pool is None:
        raise HTTPException(status_code=500, detail="Database connection pool is not available.")
    return _pool


async def getDB():
    """
    FastAPI 的 Dependency (依賴項) 函式。

    用途：
    1. 管理資料庫連線池的生命週期。
    2. 確保每次請求都有可用的連線。
    3. 使用 yield 讓 FastAPI 在請求結束後自動歸還連線
       (沒有例外就 commit，有例外就 rollback)。
    """
    pool = await _get_pool()
    async with pool.connection() as conn:
        yield conn


async def get_repository(conn=Depends(getDB)) -> MarketplaceRepository:
    """路由層只拿 repository，不直接碰連線"""
    return MarketplaceRepository(conn)


@asynccontextmanager
async def repository_session():
    """
    短暫借一條連線，用完馬上歸還。
    WebSocket 連線會維持很久，不能整段期間都佔著資料庫連線。
    """
    pool = await _get_pool()
    async with pool.connection() as conn:
        yield MarketplaceRepository(conn)


async def get_repository_session():
    return repository_session


async def close_pool() -> None:
    """伺服器關閉時呼叫，把連線池收掉"""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("db_pool_closed")
