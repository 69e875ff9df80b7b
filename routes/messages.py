from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from db import get_repository
from errors import InvalidInputError
from models.message import MessageCreate
from models.user import CallerContext
from repository import MarketplaceRepository
from routes.auth import get_caller
from services import messages as message_service
from services.conversations import get_my_conversations
from utils import FOLDER_ATTACHMENTS, save_upload_file

# 設定 Router
router = APIRouter()


# =========================================================
# 1. 寄出訊息
# =========================================================
@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    body: MessageCreate,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    message = await message_service.send_message(
        repo,
        caller,
        message=body.message,
        order_id=body.order_id,
        gig_id=body.gig_id,
        attachments=body.attachments,
    )
    return {"success": True, "message": "Message sent", "data": message}


@router.post("/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    file: UploadFile = File(...),
    caller: CallerContext = Depends(get_caller),
):
    """先上傳檔案拿到路徑，再把路徑放進訊息的 attachments 一起送出"""
    if not file.filename:
        raise InvalidInputError("File is required")
    path = await save_upload_file(file, caller.user_id, FOLDER_ATTACHMENTS)
    return {"success": True, "url": path, "filename": file.filename}


# =========================================================
# 2. 對話列表 / 未讀數
# =========================================================
@router.get("/conversations")
async def conversations(
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    return {"success": True, "conversations": await get_my_conversations(repo, caller.user_id)}


@router.get("/unread")
async def unread(
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    return {"success": True, "count": await message_service.unread_count(repo, caller)}


# =========================================================
# 3. 聊天室內容 (讀取時順便標記已讀)
# =========================================================
@router.get("/order/{order_id}")
async def order_messages(
    order_id: int,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    messages = await message_service.get_order_messages(repo, caller, order_id)
    return {"success": True, "messages": messages}


@router.get("/gig/{gig_id}")
async def gig_messages(
    gig_id: int,
    client_id: int | None = Query(default=None),
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    messages = await message_service.get_inquiry_messages(repo, caller, gig_id, client_id)
    return {"success": True, "messages": messages}


@router.put("/{message_id}/read")
async def mark_read(
    message_id: int,
    caller: CallerContext = Depends(get_caller),
    repo: MarketplaceRepository = Depends(get_repository),
):
    await message_service.mark_as_read(repo, caller, message_id)
    return {"success": True, "message": "Message marked as read"}
