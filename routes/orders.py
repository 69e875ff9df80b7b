from fastapi import APIRouter, Depends, status

from db import get_repository
from models.order import OrderCreate, OrderStatusUpdate
from models.user import CallerContext
from repository import MarketplaceRepository
from routes.auth import get_caller
from services import orders as order_service

# 設定 Router
# 商業規則 (誰可以做什麼、什麼狀態可以轉換) 都在 services/orders.py，
# 這裡只負責解析請求與包裝回應。
router = APIRouter()


# =========================================================
# 1. 下單 (委託人)
# =========================================================
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    # 角色檢查放在 service 裡，錯誤訊息才會是 "Only clients can place orders"
    order = await order_service.create_order(repo, caller, body.gig_id, body.requirements)
    return {"success": True, "message": "Order placed successfully", "order": order}


# =========================================================
# 2. 訂單列表
# =========================================================
@router.get("/my")
async def my_orders(
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    orders = await order_service.list_my_orders(repo, caller)
    return {"success": True, "orders": await order_service.with_details(repo, orders)}


@router.get("/received")
async def received_orders(
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    orders = await order_service.list_received_orders(repo, caller)
    return {"success": True, "orders": await order_service.with_details(repo, orders)}


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    order = await order_service.get_order(repo, caller, order_id)
    [detailed] = await order_service.with_details(repo, [order])
    return {"success": True, "order": detailed}


# =========================================================
# 3. 狀態轉換
# =========================================================
@router.put("/{order_id}/status")
async def update_status(
    order_id: int,
    body: OrderStatusUpdate,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    order = await order_service.update_order_status(repo, caller, order_id, body.status)
    return {"success": True, "message": "Order status updated", "order": order}


@router.put("/{order_id}/complete")
async def complete_order(
    order_id: int,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    order = await order_service.complete_order(repo, caller, order_id)
    return {"success": True, "message": "Order completed successfully", "order": order}


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    order = await order_service.cancel_order(repo, caller, order_id)
    return {"success": True, "message": "Order cancelled successfully", "order": order}
