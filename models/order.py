# models/order.py
from enum import Enum

from pydantic import Field

from models.base import RequestModel


class OrderStatus(str, Enum):
    PENDING = "pending"          # 等待接案人回應
    ACCEPTED = "accepted"        # 接案人已接受
    IN_PROGRESS = "in_progress"  # 製作中
    DELIVERED = "delivered"      # 接案人已交付，等委託人驗收
    COMPLETED = "completed"      # 委託人驗收通過 (終點)
    CANCELLED = "cancelled"      # 已取消 (終點)


# 接案人可以自行切換的三種狀態 (不限制先後順序)
FREELANCER_STATUSES = (
    OrderStatus.ACCEPTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DELIVERED,
)


class OrderCreate(RequestModel):
    gig_id: int
    requirements: str = Field(min_length=1, max_length=2000)


class OrderStatusUpdate(RequestModel):
    status: OrderStatus
