# services/ratings.py
"""
評分彙總 (Rating Aggregation)

每新增一則評價，就把「被評的接案人」與「該訂單的 gig」
各自重新計算一次平均分數與評價數。
採用全量重算 (不是累加)，並在同一個 transaction 內先鎖住該筆資料列，
同一個對象的重算會依序執行，不會互相覆蓋。
"""
from decimal import ROUND_HALF_UP, Decimal

import structlog

logger = structlog.get_logger(__name__)


def average_rating(ratings) -> tuple[float, int] | None:
    """
    回傳 (平均分數取到小數第一位, 評價數)；沒有任何評價時回傳 None。

    四捨五入採 half-up (4.25 → 4.3)，不是 Python round() 的銀行家捨入。
    """
    values = [int(r) for r in ratings]
    if not values:
        return None
    mean = Decimal(sum(values)) / Decimal(len(values))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)), len(values)


async def recompute_user_rating(repo, user_id: int) -> tuple[float, int] | None:
    async with repo.transaction():
        await repo.lock_user(user_id)
        reviews = await repo.list_reviews_for_user(user_id)
        result = average_rating(review["rating"] for review in reviews)
        if result is None:
            # 理論上不會發生 (剛新增的那則一定算得到)，保持原值不動
            return None
        await repo.set_user_rating(user_id, *result)

    logger.info("user_rating_updated", user_id=user_id, rating=result[0], total_reviews=result[1])
    return result


async def recompute_gig_rating(repo, gig_id: int) -> tuple[float, int] | None:
    async with repo.transaction():
        await repo.lock_gig(gig_id)
        # gig 本身沒有直接關聯評價：先找出這個 gig 的所有訂單，再撈這些訂單的評價
        order_ids = await repo.list_order_ids_for_gig(gig_id)
        reviews = await repo.list_reviews_for_orders(order_ids)
        result = average_rating(review["rating"] for review in reviews)
        if result is None:
            return None
        await repo.set_gig_rating(gig_id, *result)

    logger.info("gig_rating_updated", gig_id=gig_id, rating=result[0], total_reviews=result[1])
    return result
