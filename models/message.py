# models/message.py
from pydantic import Field

from models.base import RequestModel


class MessageCreate(RequestModel):
    """
    order_id 與 gig_id 擇一：
    - 有 order_id → 訂單聊天室
    - 只有 gig_id → 下單前的詢問 (inquiry)
    兩個都有時以 order_id 為準。
    """

    order_id: int | None = None
    gig_id: int | None = None
    message: str = Field(min_length=1, max_length=5000)
    attachments: list[str] = Field(default_factory=list)
