from datetime import datetime, timedelta, timezone

import pytest

from errors import ForbiddenError, InvalidInputError, NotFoundError
from models.user import UserRole
from services import messages as message_service
from services import orders as order_service
from services.conversations import derive_conversations, get_my_conversations

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _msg(id, sender, receiver, at, order_id=None, gig_id=None, is_read=False, text="hi"):
    return {
        "id": id,
        "order_id": order_id,
        "gig_id": gig_id,
        "sender_id": sender,
        "receiver_id": receiver,
        "message": text,
        "attachments": [],
        "is_read": is_read,
        "created_at": T0 + timedelta(minutes=at),
    }


# --- derive_conversations (pure) ---

def test_order_chat_and_inquiry_sorted_newest_first():
    orders = [{"id": 1, "client_id": 10, "freelancer_id": 20, "gig_id": 5}]
    order_messages = [_msg(1, 20, 10, at=2, order_id=1, text="order chat")]
    inquiries = [_msg(2, 30, 10, at=1, gig_id=6, text="inquiry")]
    gigs = {5: {"id": 5, "title": "Logo", "price": 500, "images": []}, 6: {"id": 6, "title": "Site", "price": 900}}

    result = derive_conversations(10, orders, order_messages, inquiries, gigs, {})

    assert [c["type"] for c in result] == ["order", "inquiry"]
    assert result[0]["other_user"] == {"id": 20}
    assert result[0]["gig"]["title"] == "Logo"
    assert result[1]["gig"]["images"] == []


def test_inquiry_newer_than_order_chat_comes_first():
    orders = [{"id": 1, "client_id": 10, "freelancer_id": 20, "gig_id": 5}]
    order_messages = [_msg(1, 20, 10, at=1, order_id=1)]
    inquiries = [_msg(2, 30, 10, at=5, gig_id=6)]

    result = derive_conversations(10, orders, order_messages, inquiries, {}, {})
    assert [c["type"] for c in result] == ["inquiry", "order"]


def test_inquiries_grouped_per_counterpart():
    freelancer = 20
    inquiries = [
        _msg(1, 10, freelancer, at=1, gig_id=5, text="from A"),
        _msg(2, 11, freelancer, at=2, gig_id=5, text="from B"),
        _msg(3, freelancer, 10, at=3, gig_id=5, text="reply A"),
    ]
    users = {10: {"id": 10, "name": "A"}, 11: {"id": 11, "name": "B"}}

    result = derive_conversations(freelancer, [], [], inquiries, {}, users)

    assert len(result) == 2
    by_name = {c["other_user"]["name"]: c for c in result}
    assert by_name["A"]["last_message"]["message"] == "reply A"
    assert by_name["A"]["unread_count"] == 1
    assert by_name["B"]["unread_count"] == 1
    assert [c["other_user"]["name"] for c in result] == ["A", "B"]


def test_same_counterpart_different_gigs_are_separate():
    inquiries = [_msg(1, 10, 20, at=1, gig_id=5), _msg(2, 10, 20, at=2, gig_id=6)]
    result = derive_conversations(20, [], [], inquiries, {}, {})
    assert sorted(c["gig_id"] for c in result) == [5, 6]


def test_orders_without_messages_are_hidden():
    orders = [{"id": 1, "client_id": 10, "freelancer_id": 20, "gig_id": 5}]
    assert derive_conversations(10, orders, [], [], {}, {}) == []


def test_unread_only_counts_messages_to_caller():
    orders = [{"id": 1, "client_id": 10, "freelancer_id": 20, "gig_id": 5}]
    order_messages = [
        _msg(1, 20, 10, at=1, order_id=1),
        _msg(2, 20, 10, at=2, order_id=1, is_read=True),
        _msg(3, 10, 20, at=3, order_id=1),
    ]
    [conversation] = derive_conversations(10, orders, order_messages, [], {}, {})
    assert conversation["unread_count"] == 1
    assert conversation["last_message"] == {
        "message": "hi",
        "created_at": T0 + timedelta(minutes=3),
        "is_read": False,
    }


def test_inquiry_without_gig_uses_none_bucket():
    inquiries = [_msg(1, 10, 20, at=1), _msg(2, 20, 10, at=2)]
    [conversation] = derive_conversations(20, [], [], inquiries, {}, {})
    assert conversation["gig_id"] is None
    assert conversation["gig"] is None


# --- services against the store ---

@pytest.fixture
async def chat(make_user, make_gig):
    client, _ = await make_user(UserRole.CLIENT)
    freelancer, _ = await make_user(UserRole.FREELANCER)
    gig = await make_gig(freelancer)
    return client, freelancer, gig


async def test_order_chat_receiver_is_other_party(repo, chat):
    client, freelancer, gig = chat
    order = await order_service.create_order(repo, client, gig["id"], "x")

    sent = await message_service.send_message(repo, client, "hello", order_id=order["id"], gig_id=gig["id"])
    assert sent["receiver_id"] == freelancer.user_id
    assert sent["gig_id"] is None

    reply = await message_service.send_message(repo, freelancer, "hi back", order_id=order["id"])
    assert reply["receiver_id"] == client.user_id


async def test_send_message_checks(repo, chat, make_user):
    client, freelancer, gig = chat
    order = await order_service.create_order(repo, client, gig["id"], "x")
    outsider, _ = await make_user(UserRole.CLIENT)

    with pytest.raises(InvalidInputError, match="Either orderId or gigId is required"):
        await message_service.send_message(repo, client, "hi")
    with pytest.raises(NotFoundError):
        await message_service.send_message(repo, client, "hi", order_id=999)
    with pytest.raises(ForbiddenError):
        await message_service.send_message(repo, outsider, "hi", order_id=order["id"])
    with pytest.raises(InvalidInputError, match="You cannot contact yourself"):
        await message_service.send_message(repo, freelancer, "hi", gig_id=gig["id"])
    with pytest.raises(NotFoundError):
        await message_service.send_message(repo, client, "hi", gig_id=999)
    assert repo.messages == {}


async def test_reading_order_messages_marks_only_receivers_copy(repo, chat):
    client, freelancer, gig = chat
    order = await order_service.create_order(repo, client, gig["id"], "x")
    sent = await message_service.send_message(repo, client, "hello", order_id=order["id"])

    # 寄件人自己讀，不會變成已讀
    await message_service.get_order_messages(repo, client, order["id"])
    assert repo.messages[sent["id"]]["is_read"] is False

    messages = await message_service.get_order_messages(repo, freelancer, order["id"])
    assert [m["id"] for m in messages] == [sent["id"]]
    assert repo.messages[sent["id"]]["is_read"] is True


async def test_inquiry_fetch_is_scoped_to_pair(repo, chat, make_user):
    client, freelancer, gig = chat
    other_client, _ = await make_user(UserRole.CLIENT)
    mine = await message_service.send_message(repo, client, "question A", gig_id=gig["id"])
    theirs = await message_service.send_message(repo, other_client, "question B", gig_id=gig["id"])

    with pytest.raises(InvalidInputError, match="ClientId required for freelancers"):
        await message_service.get_inquiry_messages(repo, freelancer, gig["id"])

    thread = await message_service.get_inquiry_messages(repo, freelancer, gig["id"], client.user_id)
    assert [m["id"] for m in thread] == [mine["id"]]
    assert repo.messages[mine["id"]]["is_read"] is True
    assert repo.messages[theirs["id"]]["is_read"] is False

    client_view = await message_service.get_inquiry_messages(repo, client, gig["id"])
    assert [m["id"] for m in client_view] == [mine["id"]]


async def test_my_conversations_for_freelancer(repo, chat, make_user):
    client, freelancer, gig = chat
    other_client, _ = await make_user(UserRole.CLIENT)
    await message_service.send_message(repo, client, "inquiry A", gig_id=gig["id"])
    await message_service.send_message(repo, other_client, "inquiry B", gig_id=gig["id"])
    order = await order_service.create_order(repo, client, gig["id"], "x")
    await message_service.send_message(repo, client, "order chat", order_id=order["id"])

    result = await get_my_conversations(repo, freelancer.user_id)

    assert [c["type"] for c in result] == ["order", "inquiry", "inquiry"]
    assert [c["last_message"]["message"] for c in result] == ["order chat", "inquiry B", "inquiry A"]
    assert result[0]["other_user"]["id"] == client.user_id
    assert result[0]["gig"]["id"] == gig["id"]
    assert await message_service.unread_count(repo, freelancer) == 3


async def test_mark_as_read_receiver_only(repo, chat):
    client, freelancer, gig = chat
    sent = await message_service.send_message(repo, client, "hi", gig_id=gig["id"])

    with pytest.raises(ForbiddenError):
        await message_service.mark_as_read(repo, client, sent["id"])
    with pytest.raises(NotFoundError):
        await message_service.mark_as_read(repo, freelancer, 999)

    await message_service.mark_as_read(repo, freelancer, sent["id"])
    assert repo.messages[sent["id"]]["is_read"] is True
    assert await message_service.unread_count(repo, freelancer) == 0
