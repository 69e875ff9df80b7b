# models/review.py
from pydantic import Field

from models.base import RequestModel


class ReviewCreate(RequestModel):
    order_id: int
    rating: int = Field(ge=1, le=5)
    message: str = Field(min_length=1, max_length=1000)
    # 匿名只影響顯示，不影響平均分數的計算
    anonymous: bool = False


ANONYMOUS_REVIEWER = {"name": "Anonymous", "profile_picture": None}
