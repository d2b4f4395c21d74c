from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException, InvalidStatusTransitionException
from domain.order.entity import CartLine, Order, OrderStatus, PendingSnapshot, can_transition
from domain.order.pricing import amounts_match, discounted_unit_price, quote_cart


def _order(status=OrderStatus.PENDING) -> Order:
    return Order(
        id="order_1",
        user_id="u1",
        user_email=None,
        status=status,
        total_amount=Decimal("10.00"),
        currency="INR",
    )


def test_pending_moves_to_preparing_once():
    order = _order()
    paid_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    order.mark_preparing("pay_1", paid_at)
    assert order.status is OrderStatus.PREPARING
    assert order.payment_id == "pay_1"
    assert order.paid_at == paid_at
    with pytest.raises(InvalidStatusTransitionException):
        order.mark_preparing("pay_2")


def test_preparing_without_gateway_payment_id():
    order = _order()
    order.mark_preparing("")
    assert order.status is OrderStatus.PREPARING
    assert order.payment_id is None
    assert order.paid_at is not None


def test_success_is_sticky():
    order = _order()
    order.mark_preparing("pay_1")
    with pytest.raises(InvalidStatusTransitionException):
        order.mark_failed("CANCELLED")
    assert order.status is OrderStatus.PREPARING


def test_failed_is_terminal():
    order = _order()
    order.mark_failed("EXPIRED")
    assert order.failure_reason == "EXPIRED"
    assert order.is_terminal
    with pytest.raises(InvalidStatusTransitionException):
        order.mark_preparing("pay_1")


def test_preparing_can_be_flagged():
    order = _order()
    order.mark_preparing("pay_1")
    order.flag_for_reconciliation("missing_cart_snapshot")
    assert order.status is OrderStatus.NEEDS_RECONCILIATION
    assert order.payment_id == "pay_1"


def test_transition_table():
    assert can_transition(OrderStatus.PENDING, OrderStatus.FAILED)
    assert not can_transition(OrderStatus.FAILED, OrderStatus.PENDING)
    assert not can_transition(OrderStatus.NEEDS_RECONCILIATION, OrderStatus.PREPARING)


def test_order_rejects_non_positive_amount():
    with pytest.raises(DomainValidationException):
        Order(id="o", user_id="u", user_email=None, status=OrderStatus.PENDING,
              total_amount=Decimal("0"), currency="INR")


def test_cart_line_validation():
    with pytest.raises(DomainValidationException):
        CartLine(item_id="x", unit_price=Decimal("1.00"), quantity=0)
    with pytest.raises(DomainValidationException):
        CartLine(item_id="", unit_price=Decimal("1.00"), quantity=1)


def test_cart_line_round_trip_keeps_price_exact():
    line = CartLine(item_id="sku", unit_price=Decimal("19.99"), quantity=3)
    assert CartLine.from_dict(line.to_dict()) == line


def test_quote_without_discount():
    cart = [
        CartLine(item_id="a", unit_price=Decimal("100.00"), quantity=2),
        CartLine(item_id="b", unit_price=Decimal("0.10"), quantity=3),
    ]
    assert quote_cart(cart) == Decimal("200.30")


def test_quote_with_discount_matches_line_items():
    cart = [
        CartLine(item_id="a", unit_price=Decimal("99.99"), quantity=3),
        CartLine(item_id="b", unit_price=Decimal("15.55"), quantity=1),
    ]
    pct = Decimal("10")
    total = quote_cart(cart, pct)
    snapshot = PendingSnapshot(
        order_id="o", user_id="u", user_email=None, cart=cart,
        amount=total, currency="INR", discount_percent=pct,
    )
    assert sum((item.unit_price * item.quantity for item in snapshot.line_items()), Decimal("0")) == total
    assert discounted_unit_price(Decimal("99.99"), pct) == Decimal("89.99")


def test_amounts_match_tolerance():
    assert amounts_match(Decimal("100.00"), Decimal("100.01"))
    assert not amounts_match(Decimal("100.00"), Decimal("100.02"))
    assert amounts_match(Decimal("250"), Decimal("250.00"))
