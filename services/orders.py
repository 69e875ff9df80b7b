# services/orders.py
"""
訂單生命週期 (Order Lifecycle)

    pending → accepted → in_progress → delivered → completed
    pending → cancelled

- 建立訂單：只有委託人，而且不能買自己的服務，價格從 gig 複製過來。
- accepted / in_progress / delivered：只有該訂單的接案人，三者之間不限制順序。
- completed：只有該訂單的委託人，而且必須已交付 (delivered)。
  結案時同一個 transaction 內完成：寫入 completed_at、gig 完成數 +1、接案人錢包入帳。
- cancelled：雙方都可以，但只有 pending 時可以取消。
"""
from datetime import datetime, timezone

import structlog

from errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from models.gig import GigStatus, gig_summary
from models.order import FREELANCER_STATUSES, OrderStatus
from models.user import CallerContext

logger = structlog.get_logger(__name__)


def _is_party(order: dict, caller: CallerContext) -> bool:
    return caller.user_id in (order["client_id"], order["freelancer_id"])


async def _load_order(repo, order_id: int) -> dict:
    order = await repo.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


async def with_details(repo, orders: list[dict]) -> list[dict]:
    """補上 gig / 委託人 / 接案人的精簡資料，給列表與詳情頁顯示"""
    gigs = await repo.get_gigs_by_ids(order["gig_id"] for order in orders)
    users = await repo.get_user_summaries(
        [order["client_id"] for order in orders] + [order["freelancer_id"] for order in orders]
    )
    return [
        {
            **order,
            "gig": gig_summary(gigs.get(order["gig_id"])),
            "client": users.get(order["client_id"]),
            "freelancer": users.get(order["freelancer_id"]),
        }
        for order in orders
    ]


async def create_order(repo, caller: CallerContext, gig_id: int, requirements: str) -> dict:
    if not caller.is_client:
        raise ForbiddenError("Only clients can place orders")

    gig = await repo.get_gig(gig_id)
    if not gig:
        raise NotFoundError("Gig not found")

    if gig["status"] != GigStatus.ACTIVE.value:
        raise InvalidStateError("This gig is not available")

    # 不能下單買自己的服務
    if gig["freelancer_id"] == caller.user_id:
        raise InvalidInputError("You cannot order your own gig")

    # 價格以下單當下為準，之後 gig 改價不影響已成立的訂單
    order = await repo.create_order(
        client_id=caller.user_id,
        freelancer_id=gig["freelancer_id"],
        gig_id=gig["id"],
        requirements=requirements,
        price=gig["price"],
    )
    logger.info("order_created", order_id=order["id"], gig_id=gig["id"], client_id=caller.user_id)
    return order


async def get_order(repo, caller: CallerContext, order_id: int) -> dict:
    order = await _load_order(repo, order_id)
    if not _is_party(order, caller):
        raise ForbiddenError("You do not have access to this order")
    return order


async def list_my_orders(repo, caller: CallerContext) -> list[dict]:
    return await repo.list_orders(client_id=caller.user_id)


async def list_received_orders(repo, caller: CallerContext) -> list[dict]:
    return await repo.list_orders(freelancer_id=caller.user_id)


async def update_order_status(repo, caller: CallerContext, order_id: int, new_status) -> dict:
    order = await _load_order(repo, order_id)

    if order["freelancer_id"] != caller.user_id:
        raise ForbiddenError("Only the freelancer can update order status")

    try:
        new_status = OrderStatus(new_status)
    except ValueError:
        raise InvalidInputError("Invalid status")
    if new_status not in FREELANCER_STATUSES:
        raise InvalidInputError("Invalid status")

    # 終點狀態 (completed / cancelled) 之後就不能再動
    movable = (OrderStatus.PENDING, *FREELANCER_STATUSES)
    if OrderStatus(order["status"]) not in movable:
        raise InvalidStateError(f"Order is already {order['status']}")

    updated = await repo.transition_order(order_id, new_status, from_statuses=movable)
    if updated is None:
        raise InvalidStateError("Order status changed, please reload")

    logger.info("order_status_updated", order_id=order_id, status=new_status.value)
    return updated


async def complete_order(repo, caller: CallerContext, order_id: int) -> dict:
    order = await _load_order(repo, order_id)

    if order["client_id"] != caller.user_id:
        raise ForbiddenError("Only the client can complete the order")

    if order["status"] != OrderStatus.DELIVERED.value:
        raise InvalidStateError("Order must be delivered before completing")

    # 三個寫入放在同一個 transaction：任何一步失敗就全部不算
    async with repo.transaction():
        completed = await repo.transition_order(
            order_id,
            OrderStatus.COMPLETED,
            from_statuses=(OrderStatus.DELIVERED,),
            completed_at=datetime.now(timezone.utc),
        )
        if completed is None:
            raise InvalidStateError("Order must be delivered before completing")

        # 鎖定順序固定為 user → gig，和評分重算 (services/ratings.py) 一致
        await repo.credit_wallet(completed["freelancer_id"], completed["price"])
        await repo.increment_gig_orders(completed["gig_id"])

    logger.info(
        "order_completed",
        order_id=order_id,
        freelancer_id=completed["freelancer_id"],
        amount=str(completed["price"]),
    )
    return completed


async def cancel_order(repo, caller: CallerContext, order_id: int) -> dict:
    order = await _load_order(repo, order_id)

    if not _is_party(order, caller):
        raise ForbiddenError("You cannot cancel this order")

    if order["status"] != OrderStatus.PENDING.value:
        raise InvalidStateError("Can only cancel pending orders")

    cancelled = await repo.transition_order(
        order_id, OrderStatus.CANCELLED, from_statuses=(OrderStatus.PENDING,)
    )
    if cancelled is None:
        raise InvalidStateError("Can only cancel pending orders")

    logger.info("order_cancelled", order_id=order_id, by=caller.user_id)
    return cancelled
