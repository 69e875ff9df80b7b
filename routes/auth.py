import structlog
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from db import get_repository
from errors import ForbiddenError, InvalidInputError, UnauthenticatedError
from models.user import CallerContext, LoginRequest, SignupRequest, public_profile
from repository import MarketplaceRepository
from security import create_access_token, decode_access_token, hash_password, verify_password

# --- 1. 設定 Router ---
router = APIRouter()
logger = structlog.get_logger(__name__)

# auto_error=False：沒帶 Token 時由我們自己回 401，訊息格式才會一致
bearer_scheme = HTTPBearer(auto_error=False)


# --- 2. 核心依賴函式：取得當前登入者 ---
# 這是一個 "Dependency"，會在其他路由執行前先跑過一遍
async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    repo: MarketplaceRepository = Depends(get_repository),
) -> dict:
    """
    檢查 Authorization: Bearer <token>，回傳使用者資料 (dict)。

    運作原理：
    1. 前端每次請求都在 Header 帶上登入時拿到的 Token。
    2. 伺服器驗證簽章與期限，取出 user id。
    3. 用這個 ID 去資料庫查是不是真的有這個人。
    """
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Token missing")

    user_id = decode_access_token(credentials.credentials)
    user = await repo.get_user(user_id)

    if not user:
        # Token 是真的，但資料庫找不到人 (帳號已刪除)
        raise UnauthenticatedError("Invalid token")

    return user


async def get_caller(user: dict = Depends(get_current_user)) -> CallerContext:
    """把使用者資料收斂成不可變的 CallerContext，傳給 service 層"""
    return CallerContext(user_id=user["id"], role=user["role"])


# --- 3. 權限控管依賴函式 ---

# [接案人 Freelancer] 專用權限檢查
async def get_current_freelancer_user(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    if not caller.is_freelancer:
        raise ForbiddenError("Only freelancers can perform this action")
    return caller


# --- 4. 註冊功能 ---
@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, repo: MarketplaceRepository = Depends(get_repository)):
    # 步驟 1: 檢查重複 (同一個 Email 不能註冊兩次)
    if await repo.email_exists(body.email):
        raise InvalidInputError("User already exists with this email")

    # 步驟 2: 密碼一定要雜湊後才能存
    user = await repo.create_user(
        name=body.name,
        email=body.email,
        hashed_password=hash_password(body.password),
        role=body.role.value,
    )
    logger.info("user_registered", user_id=user["id"], role=user["role"])

    return {
        "success": True,
        "message": "User registered successfully",
        "token": create_access_token(user["id"]),
        "user": public_profile(user),
    }


# --- 5. 登入功能 ---
@router.post("/login")
async def login(body: LoginRequest, repo: MarketplaceRepository = Depends(get_repository)):
    user = await repo.get_user_with_password(body.email)

    # 帳號不存在 或 密碼不對，回同一個訊息，不透露是哪一個錯
    if not user or not verify_password(body.password, user["hashed_password"]):
        raise InvalidInputError("Invalid credentials")

    return {
        "success": True,
        "message": "Login successful",
        "token": create_access_token(user["id"]),
        "user": public_profile(user),
    }


# --- 6. 取得自己的資料 ---
@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    return {"success": True, "user": public_profile(user, include_private=True)}
