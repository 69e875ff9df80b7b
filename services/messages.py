# services/messages.py
import structlog

from errors import ForbiddenError, InvalidInputError, NotFoundError
from models.user import CallerContext

logger = structlog.get_logger(__name__)


async def _order_for_party(repo, caller: CallerContext, order_id: int) -> dict:
    order = await repo.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    if caller.user_id not in (order["client_id"], order["freelancer_id"]):
        raise ForbiddenError("You are not part of this order")
    return order


async def send_message(
    repo,
    caller: CallerContext,
    message: str,
    order_id: int | None = None,
    gig_id: int | None = None,
    attachments: list[str] | None = None,
) -> dict:
    """
    寄出訊息。收件人由系統決定，不接受前端指定：
    - 訂單聊天：收件人是訂單的另一方
    - 下單前詢問：收件人是 gig 的擁有者
    """
    if order_id is not None:
        order = await _order_for_party(repo, caller, order_id)
        receiver_id = order["freelancer_id"] if order["client_id"] == caller.user_id else order["client_id"]
        # 訂單聊天不記 gig_id，兩種對話類別互不重疊
        gig_id = None
    elif gig_id is not None:
        gig = await repo.get_gig(gig_id)
        if not gig:
            raise NotFoundError("Gig not found")
        if gig["freelancer_id"] == caller.user_id:
            raise InvalidInputError("You cannot contact yourself")
        receiver_id = gig["freelancer_id"]
    else:
        raise InvalidInputError("Either orderId or gigId is required")

    if not message or not message.strip():
        raise InvalidInputError("Message is required")

    saved = await repo.create_message(
        order_id=order_id,
        gig_id=gig_id,
        sender_id=caller.user_id,
        receiver_id=receiver_id,
        message=message,
        attachments=list(attachments or []),
    )
    logger.info("message_sent", message_id=saved["id"], order_id=order_id, gig_id=gig_id)
    return saved


async def get_order_messages(repo, caller: CallerContext, order_id: int) -> list[dict]:
    """
    撈訂單聊天室的所有訊息 (由舊到新)。
    副作用：寄給呼叫者、還沒讀的訊息會被標成已讀。
    回傳的是標記之前的狀態，前端可以據此顯示「新訊息」分隔線。
    """
    await _order_for_party(repo, caller, order_id)

    messages = await repo.list_order_messages(order_id)
    marked = await repo.mark_order_messages_read(order_id, caller.user_id)
    if marked:
        logger.debug("messages_marked_read", order_id=order_id, count=marked)
    return messages


async def get_inquiry_messages(
    repo, caller: CallerContext, gig_id: int, client_id: int | None = None
) -> list[dict]:
    """
    撈某個 gig 的下單前詢問，範圍限定在 (gig, 對方) 這一組：
    - gig 擁有者 (接案人) 可能同時被很多委託人詢問，必須指定 client_id
    - 其他人的對方一定是 gig 擁有者
    副作用：對方寄給呼叫者的未讀訊息標成已讀。
    """
    gig = await repo.get_gig(gig_id)
    if not gig:
        raise NotFoundError("Gig not found")

    if gig["freelancer_id"] == caller.user_id:
        if client_id is None:
            raise InvalidInputError("ClientId required for freelancers")
        counterpart_id = client_id
    else:
        counterpart_id = gig["freelancer_id"]

    messages = await repo.list_inquiry_messages(gig_id, caller.user_id, counterpart_id)
    await repo.mark_inquiry_messages_read(gig_id, counterpart_id, caller.user_id)
    return messages


async def mark_as_read(repo, caller: CallerContext, message_id: int) -> None:
    message = await repo.get_message(message_id)
    if not message:
        raise NotFoundError("Message not found")

    # 只有收件人可以標記已讀
    if message["receiver_id"] != caller.user_id:
        raise ForbiddenError("Only receiver can mark message as read")

    await repo.mark_message_read(message_id)


async def unread_count(repo, caller: CallerContext) -> int:
    return await repo.count_unread(caller.user_id)
