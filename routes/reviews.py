# routes/reviews.py
from fastapi import APIRouter, Depends, status

from db import get_repository
from models.review import ReviewCreate
from models.user import CallerContext
from repository import MarketplaceRepository
from routes.auth import get_caller
from services import reviews as review_service

router = APIRouter(tags=["reviews"])


# ------------------------------------------------------
# POST：委託人對已結案的訂單留下評價
# ------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    review = await review_service.create_review(
        repo,
        caller,
        order_id=body.order_id,
        rating=body.rating,
        message=body.message,
        anonymous=body.anonymous,
    )
    return {"success": True, "message": "Review submitted successfully", "review": review}


# ------------------------------------------------------
# GET：公開的評價列表 (匿名評價會遮掉評價者)
# ------------------------------------------------------
@router.get("/gig/{gig_id}")
async def gig_reviews(gig_id: int, repo: MarketplaceRepository = Depends(get_repository)):
    reviews = await review_service.list_gig_reviews(repo, gig_id)
    return {"success": True, "reviews": reviews}


@router.get("/user/{user_id}")
async def user_reviews(user_id: int, repo: MarketplaceRepository = Depends(get_repository)):
    reviews = await review_service.list_user_reviews(repo, user_id)
    return {"success": True, "reviews": reviews}
