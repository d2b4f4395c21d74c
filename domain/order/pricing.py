"""
订单计价 - 服务端根据购物车重新计算应付金额
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from domain.order.entity import CartLine, to_money

HUNDRED = Decimal("100")


def discounted_unit_price(unit_price: Decimal, discount_percent: Decimal) -> Decimal:
    """折后单价，按分四舍五入。金额汇总基于折后单价，保证明细合计与报价一致。"""
    if not discount_percent:
        return to_money(unit_price)
    return to_money(unit_price * (HUNDRED - discount_percent) / HUNDRED)


def quote_cart(cart: Iterable[CartLine], discount_percent: Decimal = Decimal("0")) -> Decimal:
    """计算购物车应付总额"""
    total = sum(
        (discounted_unit_price(line.unit_price, discount_percent) * line.quantity for line in cart),
        Decimal("0"),
    )
    return to_money(total)


def amounts_match(a: Decimal, b: Decimal, tolerance: Decimal = Decimal("0.01")) -> bool:
    return abs(to_money(a) - to_money(b)) <= tolerance
