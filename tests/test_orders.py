from decimal import Decimal

import pytest

from errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from models.order import OrderStatus
from models.user import CallerContext, UserRole
from services import orders as order_service
from services import reviews as review_service


@pytest.fixture
async def parties(make_user, make_gig):
    client, _ = await make_user(UserRole.CLIENT)
    freelancer, _ = await make_user(UserRole.FREELANCER)
    gig = await make_gig(freelancer, price=500)
    return client, freelancer, gig


async def _delivered_order(repo, client, freelancer, gig):
    order = await order_service.create_order(repo, client, gig["id"], "Need a logo")
    await order_service.update_order_status(repo, freelancer, order["id"], OrderStatus.DELIVERED)
    return order


# --- create ---

async def test_create_order_copies_price_and_parties(repo, parties):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "Need a logo")

    assert order["status"] == "pending"
    assert order["price"] == gig["price"]
    assert order["client_id"] == client.user_id
    assert order["freelancer_id"] == freelancer.user_id
    assert order["completed_at"] is None
    assert order["is_reviewed"] is False


async def test_price_is_frozen_at_creation(repo, parties):
    client, _, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "Need a logo")
    await repo.update_gig(gig["id"], {"price": 900})

    assert (await repo.get_order(order["id"]))["price"] == Decimal("500")


async def test_only_clients_can_order(repo, parties, make_user):
    _, _, gig = parties
    other_freelancer, _ = await make_user(UserRole.FREELANCER)
    with pytest.raises(ForbiddenError, match="Only clients can place orders"):
        await order_service.create_order(repo, other_freelancer, gig["id"], "x")


async def test_order_missing_gig(repo, parties):
    client, _, _ = parties
    with pytest.raises(NotFoundError, match="Gig not found"):
        await order_service.create_order(repo, client, 999, "x")


async def test_order_inactive_gig(repo, parties):
    client, _, gig = parties
    await repo.update_gig(gig["id"], {"status": "inactive"})
    with pytest.raises(InvalidStateError, match="This gig is not available"):
        await order_service.create_order(repo, client, gig["id"], "x")
    assert repo.orders == {}


async def test_cannot_order_own_gig(repo, make_gig):
    # 角色是 client 但 gig 的擁有者是自己 (資料不一致時的保護)
    repo_user = await repo.create_user("Both", "both@example.com", "x", "client")
    caller = CallerContext(user_id=repo_user["id"], role=UserRole.CLIENT)
    gig = await make_gig(caller)
    with pytest.raises(InvalidInputError, match="You cannot order your own gig"):
        await order_service.create_order(repo, caller, gig["id"], "x")


# --- freelancer transitions ---

async def test_freelancer_transitions_any_order(repo, parties):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")

    for status in (OrderStatus.DELIVERED, OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS, OrderStatus.IN_PROGRESS):
        updated = await order_service.update_order_status(repo, freelancer, order["id"], status)
        assert updated["status"] == status.value


async def test_client_cannot_update_status(repo, parties):
    client, _, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")
    with pytest.raises(ForbiddenError):
        await order_service.update_order_status(repo, client, order["id"], OrderStatus.ACCEPTED)


@pytest.mark.parametrize("status", ["completed", "cancelled", "pending", "bogus"])
async def test_freelancer_cannot_set_other_statuses(repo, parties, status):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")
    with pytest.raises(InvalidInputError, match="Invalid status"):
        await order_service.update_order_status(repo, freelancer, order["id"], status)
    assert (await repo.get_order(order["id"]))["status"] == "pending"


async def test_terminal_orders_cannot_move(repo, parties):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")
    await order_service.cancel_order(repo, client, order["id"])
    with pytest.raises(InvalidStateError):
        await order_service.update_order_status(repo, freelancer, order["id"], OrderStatus.ACCEPTED)


async def test_update_status_missing_order(repo, parties):
    _, freelancer, _ = parties
    with pytest.raises(NotFoundError):
        await order_service.update_order_status(repo, freelancer, 404, OrderStatus.ACCEPTED)


# --- completion / settlement ---

async def test_complete_requires_delivered(repo, parties):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")
    await order_service.update_order_status(repo, freelancer, order["id"], OrderStatus.IN_PROGRESS)

    with pytest.raises(InvalidStateError, match="Order must be delivered before completing"):
        await order_service.complete_order(repo, client, order["id"])

    assert repo.users[freelancer.user_id]["wallet_balance"] == Decimal("0")
    assert repo.gigs[gig["id"]]["orders"] == 0


async def test_complete_settles_exactly_once(repo, parties):
    client, freelancer, gig = parties
    order = await _delivered_order(repo, client, freelancer, gig)

    completed = await order_service.complete_order(repo, client, order["id"])
    assert completed["status"] == "completed"
    assert completed["completed_at"] is not None
    assert repo.users[freelancer.user_id]["wallet_balance"] == Decimal("500")
    assert repo.gigs[gig["id"]]["orders"] == 1

    with pytest.raises(InvalidStateError):
        await order_service.complete_order(repo, client, order["id"])
    assert repo.users[freelancer.user_id]["wallet_balance"] == Decimal("500")
    assert repo.gigs[gig["id"]]["orders"] == 1


async def test_only_the_client_completes(repo, parties):
    client, freelancer, gig = parties
    order = await _delivered_order(repo, client, freelancer, gig)
    with pytest.raises(ForbiddenError):
        await order_service.complete_order(repo, freelancer, order["id"])


async def test_settlement_rolls_back_on_failure(repo, parties, monkeypatch):
    client, freelancer, gig = parties
    order = await _delivered_order(repo, client, freelancer, gig)

    async def broken_credit(user_id, amount):
        raise RuntimeError("wallet unavailable")

    monkeypatch.setattr(repo, "credit_wallet", broken_credit)
    with pytest.raises(RuntimeError):
        await order_service.complete_order(repo, client, order["id"])

    stored = await repo.get_order(order["id"])
    assert stored["status"] == "delivered"
    assert stored["completed_at"] is None
    assert repo.gigs[gig["id"]]["orders"] == 0


async def test_settlement_and_rating_lock_user_before_gig(repo, parties, monkeypatch):
    client, freelancer, gig = parties
    first = await _delivered_order(repo, client, freelancer, gig)
    await order_service.complete_order(repo, client, first["id"])
    second = await _delivered_order(repo, client, freelancer, gig)

    calls = []

    def record(name, kind):
        original = getattr(repo, name)

        async def wrapper(*args, **kwargs):
            calls.append(kind)
            return await original(*args, **kwargs)

        monkeypatch.setattr(repo, name, wrapper)

    # 會鎖住 user / gig 資料列的寫入
    record("credit_wallet", "user")
    record("lock_user", "user")
    record("increment_gig_orders", "gig")
    record("lock_gig", "gig")

    await order_service.complete_order(repo, client, second["id"])
    assert calls == ["user", "gig"]

    calls.clear()
    await review_service.create_review(repo, client, first["id"], 5, "Great")
    assert calls == ["user", "gig"]


# --- cancel ---

async def test_either_party_cancels_pending(repo, parties):
    client, freelancer, gig = parties
    first = await order_service.create_order(repo, client, gig["id"], "x")
    second = await order_service.create_order(repo, client, gig["id"], "y")

    assert (await order_service.cancel_order(repo, client, first["id"]))["status"] == "cancelled"
    assert (await order_service.cancel_order(repo, freelancer, second["id"]))["status"] == "cancelled"


async def test_cancel_requires_pending(repo, parties):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")
    await order_service.update_order_status(repo, freelancer, order["id"], OrderStatus.ACCEPTED)
    with pytest.raises(InvalidStateError, match="Can only cancel pending orders"):
        await order_service.cancel_order(repo, client, order["id"])


async def test_outsider_cannot_cancel_or_view(repo, parties, make_user):
    client, _, gig = parties
    outsider, _ = await make_user(UserRole.CLIENT)
    order = await order_service.create_order(repo, client, gig["id"], "x")
    with pytest.raises(ForbiddenError):
        await order_service.cancel_order(repo, outsider, order["id"])
    with pytest.raises(ForbiddenError):
        await order_service.get_order(repo, outsider, order["id"])


async def test_listings_are_per_side(repo, parties):
    client, freelancer, gig = parties
    order = await order_service.create_order(repo, client, gig["id"], "x")

    assert [o["id"] for o in await order_service.list_my_orders(repo, client)] == [order["id"]]
    assert await order_service.list_my_orders(repo, freelancer) == []
    assert [o["id"] for o in await order_service.list_received_orders(repo, freelancer)] == [order["id"]]

    [detailed] = await order_service.with_details(repo, [order])
    assert detailed["gig"]["title"] == gig["title"]
    assert detailed["client"]["id"] == client.user_id
    assert detailed["freelancer"]["id"] == freelancer.user_id
