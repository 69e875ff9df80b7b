# security.py
"""
身分驗證工具：密碼雜湊 (bcrypt) 與存取 Token (JWT)。

Token 只綁定 user id (sub)，角色每次都從資料庫讀，
所以帳號被刪除後舊 Token 也會失效。
"""
import os
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from errors import UnauthenticatedError

# SECRET 是簽章用的鑰匙，正式上線請一定要用環境變數覆蓋
JWT_SECRET = os.getenv("JWT_SECRET", "a_very_secret_key_please_change_me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # 資料庫裡的雜湊格式不對 (例如舊資料)，一律視為密碼錯誤
        return False


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=JWT_EXPIRE_DAYS))
    payload = {"sub": str(user_id), "iat": now, "exp": expire}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """
    驗證簽章與期限，回傳 user id。
    任何問題都丟 UnauthenticatedError (401)。
    """
    try:
        # 演算法寫死，避免 algorithm confusion
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except InvalidTokenError:
        raise UnauthenticatedError("Invalid token")

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthenticatedError("Invalid token")
