import structlog
from fastapi import APIRouter, Depends, Query, status

from db import get_repository
from errors import ForbiddenError, InvalidInputError, NotFoundError
from models.gig import GigCategory, GigCreate, GigSort, GigUpdate
from models.user import CallerContext
from repository import MarketplaceRepository
from routes.auth import get_caller, get_current_freelancer_user

# 設定 Router
router = APIRouter()
logger = structlog.get_logger(__name__)


async def _owned_gig(repo: MarketplaceRepository, gig_id: int, caller: CallerContext) -> dict:
    """取出 gig 並確認呼叫者就是擁有者"""
    gig = await repo.get_gig(gig_id)
    if not gig:
        raise NotFoundError("Gig not found")
    if gig["freelancer_id"] != caller.user_id:
        raise ForbiddenError("You can only modify your own gigs")
    return gig


# =========================================================
# 1. 建立服務 (接案人限定)
# =========================================================
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_gig(
    body: GigCreate,
    caller: CallerContext = Depends(get_current_freelancer_user),
    repo: MarketplaceRepository = Depends(get_repository),
):
    # mode="json"：Enum 轉成字串再交給 psycopg
    gig = await repo.create_gig(caller.user_id, body.model_dump(mode="json"))
    logger.info("gig_created", gig_id=gig["id"], freelancer_id=caller.user_id)
    return {"success": True, "message": "Gig created successfully", "gig": gig}


# =========================================================
# 2. 瀏覽服務列表 (公開，只列 active)
# =========================================================
@router.get("")
async def list_gigs(
    category: GigCategory | None = None,
    min_price: float | None = Query(default=None, ge=0),
    max_price: float | None = Query(default=None, ge=0),
    search: str | None = Query(default=None, max_length=100),
    sort_by: GigSort = Query(default=GigSort.CREATED_AT),
    order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=50),
    repo: MarketplaceRepository = Depends(get_repository),
):
    if min_price is not None and max_price is not None and min_price > max_price:
        raise InvalidInputError("min_price cannot be greater than max_price")

    rows, total = await repo.list_gigs(
        category=category.value if category else None,
        min_price=min_price,
        max_price=max_price,
        search=search.strip() if search else None,
        sort_by=sort_by.value,
        descending=(order == "desc"),
        skip=(page - 1) * limit,
        limit=limit,
    )
    return {
        "success": True,
        "gigs": rows,
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit,
    }


# =========================================================
# 3. 我的服務 / 某位接案人的服務
# =========================================================
# 固定路徑要放在 /{gig_id} 前面
@router.get("/my")
async def my_gigs(
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    # 自己看自己的：inactive 的也要列出來
    gigs = await repo.list_gigs_by_freelancer(caller.user_id)
    return {"success": True, "gigs": gigs}


@router.get("/freelancer/{freelancer_id}")
async def freelancer_gigs(freelancer_id: int, repo: MarketplaceRepository = Depends(get_repository)):
    gigs = await repo.list_gigs_by_freelancer(freelancer_id, active_only=True)
    return {"success": True, "gigs": gigs}


# =========================================================
# 4. 服務詳情 (公開，瀏覽數 +1)
# =========================================================
@router.get("/{gig_id}")
async def get_gig(gig_id: int, repo: MarketplaceRepository = Depends(get_repository)):
    gig = await repo.increment_gig_views(gig_id)
    if not gig:
        raise NotFoundError("Gig not found")

    owners = await repo.get_user_summaries([gig["freelancer_id"]])
    return {"success": True, "gig": {**gig, "freelancer": owners.get(gig["freelancer_id"])}}


# =========================================================
# 5. 修改 / 刪除 (擁有者限定)
# =========================================================
@router.put("/{gig_id}")
async def update_gig(
    gig_id: int,
    body: GigUpdate,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    await _owned_gig(repo, gig_id, caller)

    fields = body.model_dump(mode="json", exclude_unset=True)
    if not fields:
        raise InvalidInputError("No fields to update")

    gig = await repo.update_gig(gig_id, fields)
    logger.info("gig_updated", gig_id=gig_id, fields=sorted(fields))
    return {"success": True, "message": "Gig updated successfully", "gig": gig}


@router.delete("/{gig_id}")
async def delete_gig(
    gig_id: int,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    await _owned_gig(repo, gig_id, caller)
    await repo.delete_gig(gig_id)
    logger.info("gig_deleted", gig_id=gig_id)
    return {"success": True, "message": "Gig deleted successfully"}
