# services/conversations.py
"""
對話列表 (Conversation Derivation)

把兩種訊息整理成「對話」：
1. 訂單聊天 (type="order")：每張訂單一個對話，沒有任何訊息的訂單不顯示。
2. 下單前詢問 (type="inquiry")：order_id 為空的訊息，
   依 (對方, gig) 分組，同一個 gig 有兩個不同委託人來問，就是兩個對話。

兩種對話不互相合併，最後依「最後一則訊息時間」由新到舊排序。
derive_conversations 是純函式，不碰資料庫，方便單獨測試。
"""
from models.gig import gig_summary


def _last_message(message: dict) -> dict:
    return {
        "message": message["message"],
        "created_at": message["created_at"],
        "is_read": message["is_read"],
    }


def _latest(messages: list[dict]) -> dict:
    # 時間相同時，id 較大的 (後寫入的) 算最新
    return max(messages, key=lambda m: (m["created_at"], m["id"]))


def derive_conversations(
    caller_id: int,
    orders: list[dict],
    order_messages: list[dict],
    inquiry_messages: list[dict],
    gigs: dict[int, dict],
    users: dict[int, dict],
) -> list[dict]:
    """
    參數:
    - orders: 呼叫者參與的訂單
    - order_messages: 上述訂單裡的所有訊息
    - inquiry_messages: order_id 為空、且呼叫者是寄件人或收件人的訊息
    - gigs / users: id → 資料 的對照表，用來填 gig 與對方資訊
    """
    conversations = []

    # --- 1. 訂單聊天 ---
    by_order: dict[int, list[dict]] = {}
    for message in order_messages:
        by_order.setdefault(message["order_id"], []).append(message)

    for order in orders:
        messages = by_order.get(order["id"])
        if not messages:
            continue

        other_id = order["freelancer_id"] if order["client_id"] == caller_id else order["client_id"]
        unread = sum(1 for m in messages if m["receiver_id"] == caller_id and not m["is_read"])

        conversations.append({
            "type": "order",
            "order_id": order["id"],
            "gig": gig_summary(gigs.get(order["gig_id"])),
            "other_user": users.get(other_id) or {"id": other_id},
            "last_message": _last_message(_latest(messages)),
            "unread_count": unread,
        })

    # --- 2. 下單前詢問：依 (對方, gig) 分組 ---
    groups: dict[tuple, list[dict]] = {}
    for message in inquiry_messages:
        if message.get("order_id") is not None:
            continue
        other_id = message["receiver_id"] if message["sender_id"] == caller_id else message["sender_id"]
        key = (other_id, message.get("gig_id") if message.get("gig_id") is not None else "none")
        groups.setdefault(key, []).append(message)

    for (other_id, gig_key), messages in groups.items():
        # 未讀數只算「對方寄給我」且還沒讀的
        unread = sum(
            1 for m in messages
            if m["receiver_id"] == caller_id and m["sender_id"] == other_id and not m["is_read"]
        )
        gig_id = None if gig_key == "none" else gig_key

        conversations.append({
            "type": "inquiry",
            "gig_id": gig_id,
            "gig": gig_summary(gigs.get(gig_id)) if gig_id is not None else None,
            "other_user": users.get(other_id) or {"id": other_id},
            "last_message": _last_message(_latest(messages)),
            "unread_count": unread,
        })

    # --- 3. 合併後依最後訊息時間排序 (新 → 舊) ---
    conversations.sort(key=lambda c: c["last_message"]["created_at"], reverse=True)
    return conversations


async def get_my_conversations(repo, caller_id: int) -> list[dict]:
    """從資料庫撈出需要的資料，再交給 derive_conversations 整理"""
    orders = await repo.list_orders_for_participant(caller_id)
    order_messages = await repo.list_messages_for_orders(order["id"] for order in orders)
    inquiry_messages = await repo.list_inquiry_messages_for_user(caller_id)

    gig_ids = [order["gig_id"] for order in orders] + [m.get("gig_id") for m in inquiry_messages]
    user_ids = (
        [order["client_id"] for order in orders]
        + [order["freelancer_id"] for order in orders]
        + [m["sender_id"] for m in inquiry_messages]
        + [m["receiver_id"] for m in inquiry_messages]
    )
    gigs = await repo.get_gigs_by_ids(gig_ids)
    users = await repo.get_user_summaries(user_ids)

    return derive_conversations(caller_id, orders, order_messages, inquiry_messages, gigs, users)
