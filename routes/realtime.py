# routes/realtime.py
"""
即時聊天轉發 (Real-time Relay)

WebSocket 只負責「轉發」，不寫資料庫：
前端先用 REST (POST /api/messages) 存好訊息，再把存好的訊息丟進來，
由這裡廣播給同一個房間的其他連線。

房間名稱：
- 訂單聊天：訂單 id，例如 "12"
- 下單前詢問：inquiry_<gigId>_<寄件人 id>

每個 frame 都是 JSON：{"event": "...", "data": ...}
"""
import json
from collections import defaultdict
from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from db import get_repository_session
from errors import UnauthenticatedError
from security import decode_access_token

router = APIRouter()
logger = structlog.get_logger(__name__)


def room_for(order_id=None, gig_id=None, participant_id=None) -> str | None:
    if order_id:
        return str(order_id)
    if gig_id:
        return f"inquiry_{gig_id}_{participant_id}"
    return None


def _field(data: dict, name: str, camel: str):
    # 前端有時送 camelCase，兩種都收
    value = data.get(name)
    return value if value is not None else data.get(camel)


class RoomManager:
    """記住每個房間裡有哪些連線；只存在記憶體，伺服器重啟就清空"""

    def __init__(self) -> None:
        self._rooms: dict[str, dict[str, WebSocket]] = defaultdict(dict)

    def join(self, room: str, connection_id: str, websocket: WebSocket) -> None:
        self._rooms[room][connection_id] = websocket

    def leave_all(self, connection_id: str) -> list[str]:
        left = []
        for room in list(self._rooms):
            if self._rooms[room].pop(connection_id, None) is not None:
                left.append(room)
            if not self._rooms[room]:
                del self._rooms[room]
        return left

    def members(self, room: str) -> list[str]:
        return list(self._rooms.get(room, {}))

    async def broadcast(self, room: str, event: str, data, exclude: str | None = None) -> int:
        sent = 0
        dead = []
        for connection_id, websocket in list(self._rooms.get(room, {}).items()):
            if connection_id == exclude:
                continue
            try:
                await websocket.send_json({"event": event, "data": data})
                sent += 1
            except (WebSocketDisconnect, RuntimeError):
                dead.append(connection_id)

        for connection_id in dead:
            self.leave_all(connection_id)
        return sent


manager = RoomManager()


async def authenticate_socket(websocket: WebSocket, token: str | None, open_session) -> int | None:
    """
    Token 來源：?token=... 或 Authorization: Bearer ...
    回傳 user id；驗證失敗回傳 None。
    """
    if not token:
        header = websocket.headers.get("authorization", "")
        if header.startswith("Bearer "):
            token = header[7:]
    if not token:
        return None

    try:
        user_id = decode_access_token(token)
    except UnauthenticatedError as exc:
        logger.warning("websocket_auth_failed", reason=exc.message)
        return None

    # 帳號刪除後，舊 Token 也不能再連
    async with open_session() as repo:
        user = await repo.get_user(user_id)
    if not user:
        logger.warning("websocket_auth_failed", reason="unknown user")
        return None
    return user_id


async def can_join(open_session, user_id: int, room: str) -> bool:
    """
    訂單房間 (純數字) 只有該訂單的委託人與接案人可以加入。
    詢問房間 inquiry_* 不檢查：回覆會送到以寄件人命名的房間，雙方都要能加入。
    """
    if not room.isdigit():
        return True
    async with open_session() as repo:
        order = await repo.get_order(int(room))
    return order is not None and user_id in (order["client_id"], order["freelancer_id"])


async def handle_frame(connection_id: str, websocket: WebSocket, user_id: int, frame: dict, open_session) -> None:
    event = frame.get("event")
    data = frame.get("data")

    if event == "joinRoom":
        if not data:
            await websocket.send_json({"event": "error", "data": {"message": "Room is required"}})
            return
        room = str(data)
        if not await can_join(open_session, user_id, room):
            logger.warning("websocket_room_refused", room=room, user_id=user_id)
            await websocket.send_json({"event": "error", "data": {"message": "You cannot join this room"}})
            return
        manager.join(room, connection_id, websocket)
        logger.debug("websocket_room_joined", room=room, user_id=user_id)
        await websocket.send_json({"event": "joinedRoom", "data": room})

    elif event == "sendMessage":
        if not isinstance(data, dict):
            await websocket.send_json({"event": "error", "data": {"message": "Invalid message"}})
            return
        room = room_for(
            _field(data, "order_id", "orderId"),
            _field(data, "gig_id", "gigId"),
            _field(data, "sender_id", "senderId"),
        )
        if room is None:
            await websocket.send_json({"event": "error", "data": {"message": "Either orderId or gigId is required"}})
            return
        # 原封不動轉發，寄件人自己也會收到
        await manager.broadcast(room, "receiveMessage", data)

    elif event == "typing":
        if not isinstance(data, dict):
            return
        # 正在打字的人就是這條連線的登入者，不看前端送來的 user_id
        room = room_for(
            _field(data, "order_id", "orderId"),
            _field(data, "gig_id", "gigId"),
            user_id,
        )
        if room is None:
            return
        is_typing = bool(_field(data, "is_typing", "isTyping"))
        await manager.broadcast(
            room, "userTyping", {"user_id": user_id, "is_typing": is_typing}, exclude=connection_id
        )

    else:
        await websocket.send_json({"event": "error", "data": {"message": f"Unknown event: {event}"}})


@router.websocket("/ws")
async def relay(
    websocket: WebSocket,
    token: str | None = Query(default=None),
    open_session=Depends(get_repository_session),
):
    user_id = await authenticate_socket(websocket, token, open_session)
    if user_id is None:
        # 還沒 accept 就關掉，前端會收到 403 / 1008
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection_id = uuid4().hex
    logger.info("websocket_connected", connection_id=connection_id, user_id=user_id)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except json.JSONDecodeError:
                await websocket.send_json({"event": "error", "data": {"message": "Invalid JSON"}})
                continue
            if not isinstance(frame, dict):
                await websocket.send_json({"event": "error", "data": {"message": "Invalid frame"}})
                continue
            await handle_frame(connection_id, websocket, user_id, frame, open_session)
    except WebSocketDisconnect:
        pass
    finally:
        rooms = manager.leave_all(connection_id)
        logger.info("websocket_disconnected", connection_id=connection_id, rooms=rooms)
