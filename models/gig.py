# models/gig.py
from enum import Enum

from pydantic import Field

from models.base import PartialUpdate, RequestModel

# 價格上下限 (新台幣 / 盧比都一樣，單位由前端決定)
MIN_PRICE = 100
MAX_PRICE = 500000


class GigCategory(str, Enum):
    PROGRAMMING = "programming"
    DESIGN = "design"
    WRITING = "writing"
    MARKETING = "marketing"
    BUSINESS = "business"
    OTHER = "other"


class GigStatus(str, Enum):
    # 只有 active 的服務會出現在瀏覽頁面，也只有 active 才能下單
    ACTIVE = "active"
    INACTIVE = "inactive"


class GigSort(str, Enum):
    """列表排序欄位白名單，值直接對應資料庫欄位名稱"""

    CREATED_AT = "created_at"
    PRICE = "price"
    RATING = "rating"
    ORDERS = "orders"
    VIEWS = "views"


class GigCreate(RequestModel):
    title: str = Field(min_length=1, max_length=120)
    description: str = Field(min_length=1, max_length=5000)
    category: GigCategory
    price: float = Field(ge=MIN_PRICE, le=MAX_PRICE)
    delivery_days: int = Field(ge=1, le=30)
    revisions: int = Field(default=1, ge=0, le=10)
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class GigUpdate(PartialUpdate):
    """擁有者可以修改的欄位；沒送的欄位保持原樣"""

    title: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, min_length=1, max_length=5000)
    category: GigCategory | None = None
    price: float | None = Field(default=None, ge=MIN_PRICE, le=MAX_PRICE)
    delivery_days: int | None = Field(default=None, ge=1, le=30)
    revisions: int | None = Field(default=None, ge=0, le=10)
    images: list[str] | None = None
    tags: list[str] | None = None
    status: GigStatus | None = None


def gig_summary(gig: dict | None) -> dict | None:
    """訂單、對話列表用的精簡版服務資訊"""
    if gig is None:
        return None
    return {
        "id": gig["id"],
        "title": gig["title"],
        "price": gig["price"],
        "images": gig.get("images") or [],
    }
