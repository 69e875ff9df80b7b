# services/reviews.py
import structlog

from errors import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from models.order import OrderStatus
from models.review import ANONYMOUS_REVIEWER
from models.user import CallerContext
from services.ratings import recompute_gig_rating, recompute_user_rating

logger = structlog.get_logger(__name__)


async def create_review(
    repo,
    caller: CallerContext,
    order_id: int,
    rating: int,
    message: str,
    anonymous: bool = False,
) -> dict:
    """
    委託人在訂單結案後留下評價 (每張訂單只能一次)。
    評分範圍與留言長度由 ReviewCreate 先檢查過。
    """
    order = await repo.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")

    # 只有下單的委託人可以評價
    if order["client_id"] != caller.user_id:
        raise ForbiddenError("Only the client can review this order")

    if order["status"] != OrderStatus.COMPLETED.value:
        raise InvalidStateError("Can only review completed orders")

    if await repo.get_review_by_order(order_id):
        raise ConflictError("You have already reviewed this order")

    review = await repo.create_review(
        order_id=order_id,
        reviewer_id=caller.user_id,
        reviewee_id=order["freelancer_id"],
        rating=rating,
        message=message,
        anonymous=anonymous,
    )
    logger.info("review_created", review_id=review["id"], order_id=order_id, rating=rating)

    # 評價成立後同步更新接案人與 gig 的平均分數
    await recompute_user_rating(repo, order["freelancer_id"])
    await recompute_gig_rating(repo, order["gig_id"])

    await repo.mark_order_reviewed(order_id)
    return review


async def _with_reviewers(repo, reviews: list[dict]) -> list[dict]:
    """附上評價者資訊；匿名評價只在回應裡遮掉身分，資料庫不動"""
    users = await repo.get_user_summaries(review["reviewer_id"] for review in reviews)
    result = []
    for review in reviews:
        if review["anonymous"]:
            result.append({**review, "reviewer_id": None, "reviewer": dict(ANONYMOUS_REVIEWER)})
        else:
            result.append({**review, "reviewer": users.get(review["reviewer_id"])})
    return result


async def list_gig_reviews(repo, gig_id: int) -> list[dict]:
    order_ids = await repo.list_order_ids_for_gig(gig_id)
    reviews = await repo.list_reviews_for_orders(order_ids)
    return await _with_reviewers(repo, reviews)


async def list_user_reviews(repo, user_id: int) -> list[dict]:
    reviews = await repo.list_reviews_for_user(user_id)
    return await _with_reviewers(repo, reviews)
