from datetime import timedelta
from decimal import Decimal

import pytest

from growwise.errors import DuplicateSessionId, InvalidTransition, OrderNotFound, ValidationError
from growwise.orders.memory import MemoryOrderStore
from growwise.orders.models import Order, OrderItem, OrderPatch, OrderStatus, utcnow


def _order(order_id="ORD-1", email="a@example.com", items=None, created_at=None, **kw):
    created_at = created_at or utcnow()
    items = items if items is not None else [OrderItem(id="c1", name="Chess", price=Decimal("49.99"), quantity=2)]
    return Order(
        id=order_id,
        items=items,
        total_amount=Decimal("99.98"),
        customer_email=email,
        created_at=created_at,
        updated_at=created_at,
        **kw,
    )


@pytest.mark.asyncio
async def test_create_and_read_returns_copies():
    store = MemoryOrderStore()
    created = await store.create(_order())
    created.customer_name = "mutated"

    fetched = await store.get_by_id("ORD-1")
    assert fetched.customer_name is None
    assert fetched.total_amount == Decimal("99.98")
    assert await store.get_by_id("ORD-404") is None


@pytest.mark.asyncio
async def test_create_requires_items():
    store = MemoryOrderStore()
    with pytest.raises(ValidationError):
        await store.create(_order(items=[]))


@pytest.mark.asyncio
async def test_session_id_is_unique_on_create_and_update():
    store = MemoryOrderStore()
    await store.create(_order("ORD-1", stripe_session_id="cs_A"))
    await store.create(_order("ORD-2"))

    with pytest.raises(DuplicateSessionId):
        await store.create(_order("ORD-3", stripe_session_id="cs_A"))
    with pytest.raises(DuplicateSessionId) as exc:
        await store.update("ORD-2", OrderStatus.PENDING, OrderPatch(stripe_session_id="cs_A"))
    assert exc.value.order_id == "ORD-1"

    # la commande propriétaire peut réécrire sa propre session
    same = await store.update("ORD-1", OrderStatus.PENDING, OrderPatch(stripe_session_id="cs_A"))
    assert same.stripe_session_id == "cs_A"


@pytest.mark.asyncio
async def test_update_merges_patch_and_bumps_updated_at():
    store = MemoryOrderStore()
    old = utcnow() - timedelta(minutes=1)
    await store.create(_order(created_at=old))

    paid = await store.update("ORD-1", OrderStatus.PAID, OrderPatch(amount_paid=Decimal("99.98"), currency="usd"))

    assert paid.status is OrderStatus.PAID
    assert paid.amount_paid == Decimal("99.98")
    assert paid.updated_at > old
    assert paid.items[0].id == "c1"


@pytest.mark.asyncio
async def test_update_paid_to_paid_is_noop():
    store = MemoryOrderStore()
    await store.create(_order())
    first = await store.update("ORD-1", OrderStatus.PAID, OrderPatch(currency="usd"))

    again = await store.update("ORD-1", OrderStatus.PAID, OrderPatch(currency="eur"))

    assert again.currency == "usd"
    assert again.updated_at == first.updated_at


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal,target", [
    (OrderStatus.PAID, OrderStatus.FAILED),
    (OrderStatus.PAID, OrderStatus.PENDING),
    (OrderStatus.FAILED, OrderStatus.PAID),
])
async def test_terminal_status_never_changes(terminal, target):
    store = MemoryOrderStore()
    await store.create(_order())
    await store.update("ORD-1", terminal)

    with pytest.raises(InvalidTransition):
        await store.update("ORD-1", target)
    assert (await store.get_by_id("ORD-1")).status is terminal


@pytest.mark.asyncio
async def test_update_unknown_order():
    with pytest.raises(OrderNotFound):
        await MemoryOrderStore().update("nope", OrderStatus.PAID)


@pytest.mark.asyncio
async def test_find_by_payment_intent_id():
    store = MemoryOrderStore()
    await store.create(_order(stripe_payment_intent_id="pi_1"))

    assert (await store.find_by_payment_intent_id("pi_1")).id == "ORD-1"
    assert await store.find_by_payment_intent_id("pi_2") is None
    assert await store.find_by_payment_intent_id("") is None


@pytest.mark.asyncio
async def test_find_pending_matches_item_multiset_and_email():
    store = MemoryOrderStore()
    items = [
        OrderItem(id="a", name="A", price=Decimal("1"), quantity=1),
        OrderItem(id="b", name="B", price=Decimal("2"), quantity=3),
    ]
    await store.create(_order("ORD-1", items=items, created_at=utcnow() - timedelta(minutes=2)))
    await store.create(_order("ORD-2", items=items))

    # ordre des lignes et prix ignorés
    query = [{"id": "b", "quantity": 3, "price": 99}, {"id": "a", "quantity": 1}]
    found = await store.find_pending_by_items_and_email(query, "a@example.com")

    assert found.id == "ORD-2"
    assert await store.find_pending_by_items_and_email(query, "b@example.com") is None
    assert await store.find_pending_by_items_and_email(query, "") is None
    assert await store.find_pending_by_items_and_email([{"id": "a", "quantity": 1}], "a@example.com") is None


@pytest.mark.asyncio
async def test_find_pending_respects_window_and_status():
    store = MemoryOrderStore()
    await store.create(_order("ORD-OLD", created_at=utcnow() - timedelta(minutes=6)))
    await store.create(_order("ORD-PAID"))
    await store.update("ORD-PAID", OrderStatus.PAID)

    query = [{"id": "c1", "quantity": 2}]
    assert await store.find_pending_by_items_and_email(query, "a@example.com") is None


@pytest.mark.asyncio
async def test_list_by_email_newest_first_and_list_all_paginates():
    store = MemoryOrderStore()
    now = utcnow()
    for i in range(5):
        await store.create(_order(f"ORD-{i}", created_at=now - timedelta(minutes=10 - i)))
    await store.create(_order("ORD-X", email="other@example.com", created_at=now - timedelta(hours=1)))

    mine = await store.list_by_email("a@example.com")
    assert [o.id for o in mine] == ["ORD-4", "ORD-3", "ORD-2", "ORD-1", "ORD-0"]
    assert await store.list_by_email("") == []

    page, total = await store.list_all(limit=2, offset=1)
    assert total == 6
    assert [o.id for o in page] == ["ORD-3", "ORD-2"]
