# init_db.py
import psycopg
import structlog

# 從 db.py 匯入連線參數
from db import DATABASE_URL

logger = structlog.get_logger(__name__)

# 定義初始化 SQL 指令
# 使用 IF NOT EXISTS 避免重複建立錯誤
INIT_SQL = """
-- 1. 建立列舉類型 (Enum Types) - 統一管理狀態與角色
DO $$ BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'user_role') THEN
        CREATE TYPE user_role AS ENUM ('client', 'freelancer');
    END IF;
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'gig_status') THEN
        CREATE TYPE gig_status AS ENUM ('active', 'inactive');
    END IF;
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'order_status') THEN
        CREATE TYPE order_status AS ENUM ('pending', 'accepted', 'in_progress', 'delivered', 'completed', 'cancelled');
    END IF;
END $$;

-- 2. 建立使用者表 (users)
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    name VARCHAR(100) NOT NULL,
    email VARCHAR(255) NOT NULL UNIQUE,
    hashed_password VARCHAR(255) NOT NULL,
    role user_role NOT NULL,
    profile_picture VARCHAR(500),
    description VARCHAR(500) NOT NULL DEFAULT '',
    skills TEXT[] NOT NULL DEFAULT '{}',
    category VARCHAR(50),
    wallet_balance NUMERIC(12, 2) NOT NULL DEFAULT 0,   -- 接案人的收入累計
    rating NUMERIC(2, 1) NOT NULL DEFAULT 0 CHECK (rating BETWEEN 0 AND 5),
    total_reviews INT NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- 3. 建立服務表 (gigs)
CREATE TABLE IF NOT EXISTS gigs (
    id SERIAL PRIMARY KEY,
    freelancer_id INT NOT NULL REFERENCES users(id),
    title VARCHAR(120) NOT NULL,
    description VARCHAR(5000) NOT NULL,
    category VARCHAR(20) NOT NULL,
    price NUMERIC(10, 2) NOT NULL CHECK (price BETWEEN 100 AND 500000),
    delivery_days INT NOT NULL CHECK (delivery_days BETWEEN 1 AND 30),
    revisions INT NOT NULL DEFAULT 1 CHECK (revisions BETWEEN 0 AND 10),
    images TEXT[] NOT NULL DEFAULT '{}',
    tags TEXT[] NOT NULL DEFAULT '{}',
    status gig_status NOT NULL DEFAULT 'active',
    views INT NOT NULL DEFAULT 0,
    orders INT NOT NULL DEFAULT 0,                      -- 已完成的訂單數
    rating NUMERIC(2, 1) NOT NULL DEFAULT 0 CHECK (rating BETWEEN 0 AND 5),
    total_reviews INT NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- 4. 建立訂單表 (orders) - 價格在下單當下從 gig 複製過來
CREATE TABLE IF NOT EXISTS orders (
    id SERIAL PRIMARY KEY,
    client_id INT NOT NULL REFERENCES users(id),
    freelancer_id INT NOT NULL REFERENCES users(id),
    gig_id INT NOT NULL REFERENCES gigs(id),
    requirements VARCHAR(2000) NOT NULL,
    price NUMERIC(10, 2) NOT NULL,
    status order_status NOT NULL DEFAULT 'pending',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    completed_at TIMESTAMPTZ,
    is_reviewed BOOLEAN NOT NULL DEFAULT FALSE
);

-- 5. 建立評價表 (reviews) - 一張訂單只能有一則評價
CREATE TABLE IF NOT EXISTS reviews (
    id SERIAL PRIMARY KEY,
    order_id INT NOT NULL UNIQUE REFERENCES orders(id),
    reviewer_id INT NOT NULL REFERENCES users(id),
    reviewee_id INT NOT NULL REFERENCES users(id),
    rating INT NOT NULL CHECK (rating BETWEEN 1 AND 5),
    message VARCHAR(1000) NOT NULL,
    anonymous BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- 6. 建立訊息表 (messages)
-- order_id 有值 = 訂單聊天；order_id 為 NULL 且 gig_id 有值 = 下單前詢問
CREATE TABLE IF NOT EXISTS messages (
    id SERIAL PRIMARY KEY,
    order_id INT REFERENCES orders(id),
    gig_id INT REFERENCES gigs(id),
    sender_id INT NOT NULL REFERENCES users(id),
    receiver_id INT NOT NULL REFERENCES users(id),
    message TEXT NOT NULL,
    attachments TEXT[] NOT NULL DEFAULT '{}',
    is_read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    CHECK (order_id IS NOT NULL OR gig_id IS NOT NULL)
);

-- 建立索引以加速查詢
CREATE INDEX IF NOT EXISTS idx_gigs_freelancer ON gigs(freelancer_id);
CREATE INDEX IF NOT EXISTS idx_orders_client ON orders(client_id);
CREATE INDEX IF NOT EXISTS idx_orders_freelancer ON orders(freelancer_id);
CREATE INDEX IF NOT EXISTS idx_orders_gig ON orders(gig_id);
CREATE INDEX IF NOT EXISTS idx_reviews_reviewee ON reviews(reviewee_id);
CREATE INDEX IF NOT EXISTS idx_messages_order ON messages(order_id);
CREATE INDEX IF NOT EXISTS idx_messages_receiver_unread ON messages(receiver_id) WHERE is_read = FALSE;
"""

# 開發過程中陸續新增的欄位：(表格, 欄位, ALTER 語法)
COLUMN_REPAIRS = [
    ("users", "wallet_balance", "ALTER TABLE users ADD COLUMN wallet_balance NUMERIC(12, 2) NOT NULL DEFAULT 0"),
    ("gigs", "views", "ALTER TABLE gigs ADD COLUMN views INT NOT NULL DEFAULT 0"),
    ("orders", "is_reviewed", "ALTER TABLE orders ADD COLUMN is_reviewed BOOLEAN NOT NULL DEFAULT FALSE"),
    ("messages", "attachments", "ALTER TABLE messages ADD COLUMN attachments TEXT[] NOT NULL DEFAULT '{}'"),
]


def init_database():
    """
    執行資料庫初始化：
    1. 建立基礎表格。
    2. 自動檢查並修復舊表格的欄位缺失 (Migration)。
    """
    logger.info("db_schema_checking")
    # 這裡使用同步連線 (psycopg.connect) 因為初始化只在伺服器啟動時執行一次
    with psycopg.connect(DATABASE_URL) as conn:
        with conn.cursor() as cur:
            cur.execute(INIT_SQL)

            # --- 自動修復區域 (Auto-Migration) ---
            for table, column, ddl in COLUMN_REPAIRS:
                cur.execute(
                    "SELECT column_name FROM information_schema.columns WHERE table_name = %s AND column_name = %s",
                    (table, column),
                )
                if not cur.fetchone():
                    logger.info("db_column_added", table=table, column=column)
                    cur.execute(ddl)

        conn.commit()
    logger.info("db_schema_ready")


if __name__ == "__main__":
    init_database()
