import logging
import re
from decimal import Decimal

import pytest

from growwise.errors import DuplicateSessionId, OrderNotFound
from growwise.orders.models import OrderItem, OrderPatch, OrderStatus
from growwise.orders.service import generate_order_id


ITEMS = [OrderItem(id="c1", name="Chess", price=Decimal("49.99"), quantity=2)]


async def _new_order(lifecycle, **kw):
    kw.setdefault("customer_email", "a@example.com")
    return await lifecycle.create_order(items=ITEMS, total_amount=Decimal("99.98"), **kw)


def test_generate_order_id_format():
    first, second = generate_order_id(), generate_order_id()
    assert re.fullmatch(r"ORD-\d{13}-[0-9A-F]{8}", first)
    assert first != second


@pytest.mark.asyncio
async def test_create_order_is_pending(lifecycle):
    order = await _new_order(lifecycle, customer_name="Ada", locale="fr")

    assert order.status is OrderStatus.PENDING
    assert order.total_amount == Decimal("99.98")
    assert order.locale == "fr"
    assert order.stripe_session_id is None


@pytest.mark.asyncio
async def test_attach_session_keeps_pending(lifecycle):
    order = await _new_order(lifecycle)

    result = await lifecycle.attach_session(order.id, "cs_A", payment_intent_id="pi_A", session_url="https://pay")

    assert result.applied
    assert result.order.status is OrderStatus.PENDING
    assert result.order.stripe_session_id == "cs_A"
    assert result.order.stripe_payment_intent_id == "pi_A"


@pytest.mark.asyncio
async def test_attach_session_already_used_raises(lifecycle):
    first = await _new_order(lifecycle)
    second = await _new_order(lifecycle)
    await lifecycle.attach_session(first.id, "cs_A")

    with pytest.raises(DuplicateSessionId):
        await lifecycle.attach_session(second.id, "cs_A")


@pytest.mark.asyncio
async def test_attach_session_refused_on_order_paid_elsewhere(lifecycle, caplog):
    order = await _new_order(lifecycle)
    await lifecycle.mark_paid(order.id, session_id="cs_A")

    with caplog.at_level(logging.WARNING):
        result = await lifecycle.attach_session(order.id, "cs_B")

    assert not result.applied
    assert result.order.stripe_session_id == "cs_A"
    assert "already paid" in caplog.text


@pytest.mark.asyncio
async def test_attach_after_webhook_is_noop(lifecycle):
    order = await _new_order(lifecycle)
    await lifecycle.mark_paid(order.id, session_id="cs_A")

    result = await lifecycle.attach_session(order.id, "cs_A", session_url="https://late")

    assert not result.applied
    assert result.order.status is OrderStatus.PAID
    assert result.order.stripe_session_url is None


@pytest.mark.asyncio
async def test_mark_paid_records_payment(lifecycle):
    order = await _new_order(lifecycle)
    await lifecycle.attach_session(order.id, "cs_A")

    result = await lifecycle.mark_paid(
        order.id,
        session_id="cs_A",
        payment_intent_id="pi_A",
        details=OrderPatch(amount_paid=Decimal("99.98"), currency="usd", shipping_city="Austin"),
    )

    assert result.applied
    paid = result.order
    assert paid.status is OrderStatus.PAID
    assert paid.amount_paid == Decimal("99.98")
    assert paid.paid_at is not None
    assert paid.stripe_payment_intent_id == "pi_A"
    assert paid.shipping_city == "Austin"


@pytest.mark.asyncio
async def test_mark_paid_twice_is_idempotent(lifecycle):
    order = await _new_order(lifecycle)
    first = await lifecycle.mark_paid(order.id, session_id="cs_A", details=OrderPatch(currency="usd"))

    second = await lifecycle.mark_paid(order.id, session_id="cs_A", details=OrderPatch(currency="eur"))

    assert not second.applied
    assert second.reason == "already_paid"
    assert second.order.paid_at == first.order.paid_at
    assert second.order.currency == "usd"


@pytest.mark.asyncio
async def test_mark_paid_under_other_session_warns(lifecycle, caplog):
    order = await _new_order(lifecycle)
    await lifecycle.mark_paid(order.id, session_id="sess_A")

    with caplog.at_level(logging.WARNING):
        result = await lifecycle.mark_paid(order.id, session_id="sess_B", details=OrderPatch(amount_paid=Decimal("1")))

    assert result.reason == "paid_other_session"
    assert result.order.stripe_session_id == "sess_A"
    assert result.order.amount_paid is None
    assert "duplicate payment suspected" in caplog.text


@pytest.mark.asyncio
async def test_mark_paid_on_failed_order_is_refused(lifecycle, caplog):
    order = await _new_order(lifecycle)
    await lifecycle.mark_failed(order.id, "card_declined")

    with caplog.at_level(logging.ERROR):
        result = await lifecycle.mark_paid(order.id, session_id="cs_A")

    assert not result.applied
    assert result.order.status is OrderStatus.FAILED
    assert "réconciliation manuelle" in caplog.text


@pytest.mark.asyncio
async def test_mark_failed_never_overrides_paid(lifecycle):
    order = await _new_order(lifecycle)
    await lifecycle.mark_paid(order.id, session_id="cs_A")

    result = await lifecycle.mark_failed(order.id, "late failure")

    assert not result.applied
    assert result.order.status is OrderStatus.PAID
    assert result.order.error_message is None


@pytest.mark.asyncio
async def test_mark_failed_records_error(lifecycle):
    order = await _new_order(lifecycle)

    result = await lifecycle.mark_failed(order.id, "Stripe timeout")

    assert result.applied
    assert result.order.status is OrderStatus.FAILED
    assert result.order.error_message == "Stripe timeout"
    assert result.order.failed_at is not None


@pytest.mark.asyncio
async def test_unknown_order_raises(lifecycle):
    with pytest.raises(OrderNotFound):
        await lifecycle.mark_paid("ORD-404", session_id="cs_A")
    with pytest.raises(OrderNotFound):
        await lifecycle.mark_failed("ORD-404", "x")


@pytest.mark.asyncio
async def test_customer_details_are_backfilled_only(lifecycle):
    order = await _new_order(lifecycle, customer_name="Ada Lovelace")

    result = await lifecycle.mark_paid(
        order.id,
        session_id="cs_A",
        details=OrderPatch(customer_name="ADA L", customer_phone="+1555", customer_email="other@example.com"),
    )

    assert result.order.customer_name == "Ada Lovelace"
    assert result.order.customer_email == "a@example.com"
    assert result.order.customer_phone == "+1555"


@pytest.mark.asyncio
async def test_get_order_falls_back_to_session_id(lifecycle):
    order = await _new_order(lifecycle)
    await lifecycle.attach_session(order.id, "cs_A")

    assert (await lifecycle.get_order(order.id)).id == order.id
    assert (await lifecycle.get_order("cs_A")).id == order.id
    assert await lifecycle.get_order("missing") is None


@pytest.mark.asyncio
async def test_resolve_order_priority(lifecycle):
    order = await _new_order(lifecycle)
    await lifecycle.attach_session(order.id, "cs_A", payment_intent_id="pi_A")

    by_meta = await lifecycle.resolve_order(order_id=order.id, session_id="cs_other")
    by_session = await lifecycle.resolve_order(order_id="ORD-STALE", session_id="cs_A")
    by_pi = await lifecycle.resolve_order(payment_intent_id="pi_A")

    assert by_meta.id == by_session.id == by_pi.id == order.id
    assert await lifecycle.resolve_order(session_id="cs_none") is None
