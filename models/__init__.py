# models/__init__.py
from .user import CallerContext, UserRole
from .gig import GigStatus
from .order import OrderStatus

__all__ = ["CallerContext", "UserRole", "GigStatus", "OrderStatus"]
