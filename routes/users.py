import structlog
from fastapi import APIRouter, Depends, Query

from db import get_repository
from errors import InvalidInputError, NotFoundError
from models.user import ProfileUpdate, public_profile
from repository import MarketplaceRepository
from routes.auth import get_current_user

# 設定 Router
router = APIRouter()
logger = structlog.get_logger(__name__)


# =========================================================
# 1. 接案人列表 (公開)
# =========================================================
@router.get("/freelancers")
async def list_freelancers(
    category: str | None = None,
    skill: str | None = None,
    min_rating: float | None = Query(default=None, ge=0, le=5),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    repo: MarketplaceRepository = Depends(get_repository),
):
    # 分頁：第 page 頁 → 跳過前面 (page - 1) * limit 筆
    rows, total = await repo.list_freelancers(
        category=category,
        skill=skill,
        min_rating=min_rating,
        skip=(page - 1) * limit,
        limit=limit,
    )
    return {
        "success": True,
        "freelancers": [public_profile(row) for row in rows],
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit,
    }


# =========================================================
# 2. 修改 / 刪除自己的檔案
# =========================================================
# 注意：/profile 要寫在 /{user_id} 前面，不然會被當成 user_id
@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    user: dict = Depends(get_current_user),
    repo: MarketplaceRepository = Depends(get_repository),
):
    # 只更新有送來的欄位
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise InvalidInputError("No fields to update")

    updated = await repo.update_user(user["id"], fields)
    logger.info("profile_updated", user_id=user["id"], fields=sorted(fields))
    return {
        "success": True,
        "message": "Profile updated successfully",
        "user": public_profile(updated, include_private=True),
    }


@router.delete("/profile")
async def delete_profile(
    user: dict = Depends(get_current_user),
    repo: MarketplaceRepository = Depends(get_repository),
):
    await repo.delete_user(user["id"])
    logger.info("account_deleted", user_id=user["id"])
    return {"success": True, "message": "Account deleted successfully"}


# =========================================================
# 3. 查看個人檔案 (公開)
# =========================================================
@router.get("/{user_id}")
async def get_user_profile(user_id: int, repo: MarketplaceRepository = Depends(get_repository)):
    user = await repo.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return {"success": True, "user": public_profile(user)}
