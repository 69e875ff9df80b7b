# repository.py
"""
資料存取層 (Entity Store)

所有 SQL 指令都集中在 MarketplaceRepository 裡面，
service 與 route 只呼叫這裡的方法，不直接寫 SQL。
每個方法回傳 dict (dict_row) 或 dict 的 list，找不到資料時回傳 None。
"""
from contextlib import asynccontextmanager
from datetime import datetime

from psycopg import AsyncConnection, errors

from errors import ConflictError

USER_COLUMNS = (
    "id, name, email, role, profile_picture, description, skills, category, "
    "wallet_balance, rating, total_reviews, created_at, updated_at"
)

GIG_COLUMNS = (
    "id, freelancer_id, title, description, category, price, delivery_days, revisions, "
    "images, tags, status, views, orders, rating, total_reviews, created_at, updated_at"
)

ORDER_COLUMNS = (
    "id, client_id, freelancer_id, gig_id, requirements, price, status, "
    "created_at, completed_at, is_reviewed"
)

REVIEW_COLUMNS = "id, order_id, reviewer_id, reviewee_id, rating, message, anonymous, created_at"

MESSAGE_COLUMNS = (
    "id, order_id, gig_id, sender_id, receiver_id, message, attachments, is_read, created_at"
)


class MarketplaceRepository:
    def __init__(self, conn: AsyncConnection):
        self.conn = conn

    @asynccontextmanager
    async def transaction(self):
        """
        多步驟寫入 (結案入帳、評分重算) 放在同一個 transaction 裡，
        中途出錯就全部 rollback。
        """
        async with self.conn.transaction():
            yield

    async def _fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        async with self.conn.cursor() as cur:
            await cur.execute(sql, params)
            return await cur.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        async with self.conn.cursor() as cur:
            await cur.execute(sql, params)
            return await cur.fetchall()

    async def _execute(self, sql: str, params: tuple = ()) -> int:
        async with self.conn.cursor() as cur:
            await cur.execute(sql, params)
            return cur.rowcount

    # =========================================================
    # Users
    # =========================================================

    async def get_user(self, user_id: int) -> dict | None:
        return await self._fetchone(f"SELECT {USER_COLUMNS} FROM users WHERE id = %s", (user_id,))

    async def get_user_with_password(self, email: str) -> dict | None:
        # 只有登入時需要密碼欄位
        return await self._fetchone(
            f"SELECT {USER_COLUMNS}, hashed_password FROM users WHERE email = %s",
            (email.lower(),),
        )

    async def email_exists(self, email: str) -> bool:
        row = await self._fetchone("SELECT id FROM users WHERE email = %s", (email.lower(),))
        return row is not None

    async def create_user(self, name: str, email: str, hashed_password: str, role: str) -> dict:
        try:
            return await self._fetchone(
                f"""
                INSERT INTO users (name, email, hashed_password, role)
                VALUES (%s, %s, %s, %s)
                RETURNING {USER_COLUMNS}
                """,
                (name, email.lower(), hashed_password, role),
            )
        except errors.UniqueViolation:
            raise ConflictError("User already exists with this email")

    async def update_user(self, user_id: int, fields: dict) -> dict | None:
        assignments = [f"{column} = %s" for column in fields]
        assignments.append("updated_at = NOW()")
        return await self._fetchone(
            f"UPDATE users SET {', '.join(assignments)} WHERE id = %s RETURNING {USER_COLUMNS}",
            (*fields.values(), user_id),
        )

    async def delete_user(self, user_id: int) -> bool:
        try:
            return await self._execute("DELETE FROM users WHERE id = %s", (user_id,)) > 0
        except errors.ForeignKeyViolation:
            raise ConflictError("Account has gigs, orders or messages and cannot be deleted")

    async def list_freelancers(
        self,
        category: str | None = None,
        skill: str | None = None,
        min_rating: float | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[list[dict], int]:
        where = ["role = 'freelancer'"]
        params: list = []
        if category:
            where.append("category = %s")
            params.append(category)
        if skill:
            where.append("%s = ANY(skills)")
            params.append(skill)
        if min_rating is not None:
            where.append("rating >= %s")
            params.append(min_rating)

        where_sql = " AND ".join(where)
        rows = await self._fetchall(
            f"SELECT {USER_COLUMNS} FROM users WHERE {where_sql} ORDER BY rating DESC, id ASC OFFSET %s LIMIT %s",
            (*params, skip, limit),
        )
        total = await self._fetchone(f"SELECT COUNT(*) AS count FROM users WHERE {where_sql}", tuple(params))
        return rows, total["count"]

    async def get_user_summaries(self, user_ids) -> dict[int, dict]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = await self._fetchall(
            "SELECT id, name, profile_picture FROM users WHERE id = ANY(%s)", (ids,)
        )
        return {row["id"]: row for row in rows}

    async def lock_user(self, user_id: int) -> None:
        await self._execute("SELECT id FROM users WHERE id = %s FOR UPDATE", (user_id,))

    async def credit_wallet(self, user_id: int, amount) -> None:
        await self._execute(
            "UPDATE users SET wallet_balance = wallet_balance + %s WHERE id = %s",
            (amount, user_id),
        )

    async def set_user_rating(self, user_id: int, rating: float, total_reviews: int) -> None:
        await self._execute(
            "UPDATE users SET rating = %s, total_reviews = %s WHERE id = %s",
            (rating, total_reviews, user_id),
        )

    # =========================================================
    # Gigs
    # =========================================================

    async def create_gig(self, freelancer_id: int, data: dict) -> dict:
        columns = ["freelancer_id", *data.keys()]
        placeholders = ", ".join(["%s"] * len(columns))
        return await self._fetchone(
            f"INSERT INTO gigs ({', '.join(columns)}) VALUES ({placeholders}) RETURNING {GIG_COLUMNS}",
            (freelancer_id, *data.values()),
        )

    async def get_gig(self, gig_id: int) -> dict | None:
        return await self._fetchone(f"SELECT {GIG_COLUMNS} FROM gigs WHERE id = %s", (gig_id,))

    async def list_gigs(
        self,
        category: str | None = None,
        min_price: float | None = None,
        max_price: float | None = None,
        search: str | None = None,
        sort_by: str = "created_at",
        descending: bool = True,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[list[dict], int]:
        """
        瀏覽頁面用：只列出 active 的服務。
        sort_by 必須是 GigSort 白名單裡的欄位名稱 (由 route 保證)。
        """
        where = ["status = 'active'"]
        params: list = []
        if category:
            where.append("category = %s")
            params.append(category)
        if min_price is not None:
            where.append("price >= %s")
            params.append(min_price)
        if max_price is not None:
            where.append("price <= %s")
            params.append(max_price)
        if search:
            # ILIKE 是 PostgreSQL 專用的「不分大小寫」搜尋，標籤也一起搜
            where.append(
                "(title ILIKE %s OR description ILIKE %s "
                "OR EXISTS (SELECT 1 FROM unnest(tags) AS t WHERE t ILIKE %s))"
            )
            pattern = f"%{search}%"
            params.extend([pattern, pattern, pattern])

        where_sql = " AND ".join(where)
        direction = "DESC" if descending else "ASC"
        rows = await self._fetchall(
            f"""
            SELECT {GIG_COLUMNS} FROM gigs
            WHERE {where_sql}
            ORDER BY {sort_by} {direction}, id {direction}
            OFFSET %s LIMIT %s
            """,
            (*params, skip, limit),
        )
        total = await self._fetchone(f"SELECT COUNT(*) AS count FROM gigs WHERE {where_sql}", tuple(params))
        return rows, total["count"]

    async def list_gigs_by_freelancer(self, freelancer_id: int, active_only: bool = False) -> list[dict]:
        sql = f"SELECT {GIG_COLUMNS} FROM gigs WHERE freelancer_id = %s"
        if active_only:
            sql += " AND status = 'active'"
        sql += " ORDER BY created_at DESC, id DESC"
        return await self._fetchall(sql, (freelancer_id,))

    async def get_gigs_by_ids(self, gig_ids) -> dict[int, dict]:
        ids = list({gig_id for gig_id in gig_ids if gig_id is not None})
        if not ids:
            return {}
        rows = await self._fetchall(f"SELECT {GIG_COLUMNS} FROM gigs WHERE id = ANY(%s)", (ids,))
        return {row["id"]: row for row in rows}

    async def update_gig(self, gig_id: int, fields: dict) -> dict | None:
        assignments = [f"{column} = %s" for column in fields]
        assignments.append("updated_at = NOW()")
        return await self._fetchone(
            f"UPDATE gigs SET {', '.join(assignments)} WHERE id = %s RETURNING {GIG_COLUMNS}",
            (*fields.values(), gig_id),
        )

    async def delete_gig(self, gig_id: int) -> bool:
        try:
            return await self._execute("DELETE FROM gigs WHERE id = %s", (gig_id,)) > 0
        except errors.ForeignKeyViolation:
            raise ConflictError("Gig has orders or messages and cannot be deleted; set it inactive instead")

    async def increment_gig_views(self, gig_id: int) -> dict | None:
        return await self._fetchone(
            f"UPDATE gigs SET views = views + 1 WHERE id = %s RETURNING {GIG_COLUMNS}",
            (gig_id,),
        )

    async def increment_gig_orders(self, gig_id: int) -> None:
        await self._execute("UPDATE gigs SET orders = orders + 1 WHERE id = %s", (gig_id,))

    async def lock_gig(self, gig_id: int) -> None:
        await self._execute("SELECT id FROM gigs WHERE id = %s FOR UPDATE", (gig_id,))

    async def set_gig_rating(self, gig_id: int, rating: float, total_reviews: int) -> None:
        await self._execute(
            "UPDATE gigs SET rating = %s, total_reviews = %s WHERE id = %s",
            (rating, total_reviews, gig_id),
        )

    # =========================================================
    # Orders
    # =========================================================

    async def create_order(
        self, client_id: int, freelancer_id: int, gig_id: int, requirements: str, price
    ) -> dict:
        return await self._fetchone(
            f"""
            INSERT INTO orders (client_id, freelancer_id, gig_id, requirements, price)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {ORDER_COLUMNS}
            """,
            (client_id, freelancer_id, gig_id, requirements, price),
        )

    async def get_order(self, order_id: int) -> dict | None:
        return await self._fetchone(f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = %s", (order_id,))

    async def list_orders(self, client_id: int | None = None, freelancer_id: int | None = None) -> list[dict]:
        """依委託人或接案人撈訂單，最新的排前面"""
        if client_id is not None:
            where, param = "client_id = %s", client_id
        else:
            where, param = "freelancer_id = %s", freelancer_id
        return await self._fetchall(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {where} ORDER BY created_at DESC, id DESC",
            (param,),
        )

    async def list_orders_for_participant(self, user_id: int) -> list[dict]:
        return await self._fetchall(
            f"""
            SELECT {ORDER_COLUMNS} FROM orders
            WHERE client_id = %s OR freelancer_id = %s
            ORDER BY created_at DESC, id DESC
            """,
            (user_id, user_id),
        )

    async def list_order_ids_for_gig(self, gig_id: int) -> list[int]:
        rows = await self._fetchall("SELECT id FROM orders WHERE gig_id = %s", (gig_id,))
        return [row["id"] for row in rows]

    async def transition_order(
        self,
        order_id: int,
        new_status: str,
        from_statuses=None,
        completed_at: datetime | None = None,
    ) -> dict | None:
        """
        更新訂單狀態。
        有給 from_statuses 時，只有目前狀態在清單內才會更新
        (再檢查一次，防止兩個請求同時改同一張訂單)，否則回傳 None。
        """
        sql = "UPDATE orders SET status = %s"
        params: list = [getattr(new_status, "value", new_status)]
        if completed_at is not None:
            sql += ", completed_at = %s"
            params.append(completed_at)
        sql += " WHERE id = %s"
        params.append(order_id)
        if from_statuses is not None:
            sql += " AND status = ANY(%s::order_status[])"
            params.append([getattr(status, "value", status) for status in from_statuses])
        sql += f" RETURNING {ORDER_COLUMNS}"
        return await self._fetchone(sql, tuple(params))

    async def mark_order_reviewed(self, order_id: int) -> None:
        await self._execute("UPDATE orders SET is_reviewed = TRUE WHERE id = %s", (order_id,))

    # =========================================================
    # Reviews
    # =========================================================

    async def get_review_by_order(self, order_id: int) -> dict | None:
        return await self._fetchone(f"SELECT {REVIEW_COLUMNS} FROM reviews WHERE order_id = %s", (order_id,))

    async def create_review(
        self,
        order_id: int,
        reviewer_id: int,
        reviewee_id: int,
        rating: int,
        message: str,
        anonymous: bool,
    ) -> dict:
        try:
            return await self._fetchone(
                f"""
                INSERT INTO reviews (order_id, reviewer_id, reviewee_id, rating, message, anonymous)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {REVIEW_COLUMNS}
                """,
                (order_id, reviewer_id, reviewee_id, rating, message, anonymous),
            )
        except errors.UniqueViolation:
            # 兩個請求同時送出評價時，由 UNIQUE(order_id) 擋下第二個
            raise ConflictError("You have already reviewed this order")

    async def list_reviews_for_user(self, user_id: int) -> list[dict]:
        return await self._fetchall(
            f"""
            SELECT r.id, r.order_id, r.reviewer_id, r.reviewee_id, r.rating, r.message,
                   r.anonymous, r.created_at, o.gig_id
            FROM reviews r
            JOIN orders o ON r.order_id = o.id
            WHERE r.reviewee_id = %s
            ORDER BY r.created_at DESC, r.id DESC
            """,
            (user_id,),
        )

    async def list_reviews_for_orders(self, order_ids) -> list[dict]:
        ids = list(order_ids)
        if not ids:
            return []
        return await self._fetchall(
            f"""
            SELECT {REVIEW_COLUMNS} FROM reviews
            WHERE order_id = ANY(%s)
            ORDER BY created_at DESC, id DESC
            """,
            (ids,),
        )

    # =========================================================
    # Messages
    # =========================================================

    async def create_message(
        self,
        order_id: int | None,
        gig_id: int | None,
        sender_id: int,
        receiver_id: int,
        message: str,
        attachments: list[str],
    ) -> dict:
        return await self._fetchone(
            f"""
            INSERT INTO messages (order_id, gig_id, sender_id, receiver_id, message, attachments)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {MESSAGE_COLUMNS}
            """,
            (order_id, gig_id, sender_id, receiver_id, message, attachments),
        )

    async def get_message(self, message_id: int) -> dict | None:
        return await self._fetchone(f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE id = %s", (message_id,))

    async def list_order_messages(self, order_id: int) -> list[dict]:
        # 聊天室內容由舊到新
        return await self._fetchall(
            f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE order_id = %s ORDER BY created_at ASC, id ASC",
            (order_id,),
        )

    async def list_messages_for_orders(self, order_ids) -> list[dict]:
        ids = list(order_ids)
        if not ids:
            return []
        return await self._fetchall(
            f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE order_id = ANY(%s)",
            (ids,),
        )

    async def list_inquiry_messages(self, gig_id: int, user_a: int, user_b: int) -> list[dict]:
        """某個 gig 底下，兩個人之間的下單前對話 (由舊到新)"""
        return await self._fetchall(
            f"""
            SELECT {MESSAGE_COLUMNS} FROM messages
            WHERE gig_id = %s AND order_id IS NULL
              AND ((sender_id = %s AND receiver_id = %s) OR (sender_id = %s AND receiver_id = %s))
            ORDER BY created_at ASC, id ASC
            """,
            (gig_id, user_a, user_b, user_b, user_a),
        )

    async def list_inquiry_messages_for_user(self, user_id: int) -> list[dict]:
        return await self._fetchall(
            f"""
            SELECT {MESSAGE_COLUMNS} FROM messages
            WHERE order_id IS NULL AND (sender_id = %s OR receiver_id = %s)
            """,
            (user_id, user_id),
        )

    async def mark_message_read(self, message_id: int) -> None:
        await self._execute("UPDATE messages SET is_read = TRUE WHERE id = %s", (message_id,))

    async def mark_order_messages_read(self, order_id: int, receiver_id: int) -> int:
        return await self._execute(
            """
            UPDATE messages SET is_read = TRUE
            WHERE order_id = %s AND receiver_id = %s AND is_read = FALSE
            """,
            (order_id, receiver_id),
        )

    async def mark_inquiry_messages_read(self, gig_id: int, sender_id: int, receiver_id: int) -> int:
        return await self._execute(
            """
            UPDATE messages SET is_read = TRUE
            WHERE gig_id = %s AND order_id IS NULL
              AND sender_id = %s AND receiver_id = %s AND is_read = FALSE
            """,
            (gig_id, sender_id, receiver_id),
        )

    async def count_unread(self, receiver_id: int) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS count FROM messages WHERE receiver_id = %s AND is_read = FALSE",
            (receiver_id,),
        )
        return row["count"]
