"""
订单领域实体 - 订单聚合根、待支付快照、订单明细、支付流水
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
)

CENT = Decimal("0.01")


class OrderStatus(str, Enum):
    """订单生命周期状态"""
    PENDING = "PENDING"                            # 已创建，等待支付
    PREPARING = "PREPARING"                        # 已支付，明细已落库
    FAILED = "FAILED"                              # 支付失败/取消（终态）
    NEEDS_RECONCILIATION = "NEEDS_RECONCILIATION"  # 已支付但数据不完整，需人工处理（终态）


# 允许的状态转换；终态不在键中出现即不可再变更
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PREPARING,
        OrderStatus.FAILED,
        OrderStatus.NEEDS_RECONCILIATION,
    }),
    OrderStatus.PREPARING: frozenset({OrderStatus.NEEDS_RECONCILIATION}),
}

TERMINAL_STATUSES = frozenset({
    OrderStatus.PREPARING,
    OrderStatus.FAILED,
    OrderStatus.NEEDS_RECONCILIATION,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def to_money(value: Any) -> Decimal:
    """规范化金额为两位小数（四舍五入）"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class CartLine:
    """购物车行（下单时客户端提交）"""
    item_id: str
    unit_price: Decimal
    quantity: int

    def __post_init__(self):
        if not self.item_id:
            raise DomainValidationException("商品ID不能为空", field="cart.id")
        if self.unit_price <= 0:
            raise DomainValidationException(
                f"商品单价必须大于0: {self.unit_price}", field="cart.price"
            )
        if self.quantity <= 0:
            raise DomainValidationException(
                f"商品数量必须大于0: {self.quantity}", field="cart.quantity"
            )

    def to_dict(self) -> dict:
        return {"id": self.item_id, "price": str(self.unit_price), "quantity": self.quantity}

    @classmethod
    def from_dict(cls, raw: dict) -> "CartLine":
        return cls(
            item_id=str(raw["id"]),
            unit_price=Decimal(str(raw["price"])),
            quantity=int(raw["quantity"]),
        )


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 金额必须大于0
    2. payment_id 只在已支付状态（PREPARING 及之后）出现，且只记录网关分配的支付ID
    3. 状态转换单调：PENDING → PREPARING | FAILED，终态不可回退
    """

    id: str
    user_id: str
    user_email: Optional[str]
    status: OrderStatus
    total_amount: Decimal
    currency: str
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total_amount <= 0:
            raise DomainValidationException(
                f"订单金额必须大于0: {self.total_amount}", field="amount"
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _move_to(self, target: OrderStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidStatusTransitionException(self.id, self.status.value, target.value)
        self.status = target
        self.updated_at = datetime.now(timezone.utc)

    def mark_preparing(self, payment_id: Optional[str], paid_at: Optional[datetime] = None) -> None:
        """
        标记已支付（只能从 PENDING 转入）

        payment_id 为网关分配的支付ID；回调未携带时为空，由后续回调补齐。
        """
        self._move_to(OrderStatus.PREPARING)
        self.payment_id = payment_id or None
        self.paid_at = _ensure_utc(paid_at) or self.updated_at

    def mark_failed(self, reason: Optional[str] = None) -> None:
        """标记支付失败（只能从 PENDING 转入）"""
        self._move_to(OrderStatus.FAILED)
        self.failure_reason = reason

    def flag_for_reconciliation(self, reason: str, payment_id: Optional[str] = None) -> None:
        """标记为需人工对账"""
        self._move_to(OrderStatus.NEEDS_RECONCILIATION)
        if payment_id and not self.payment_id:
            self.payment_id = payment_id
            self.paid_at = self.updated_at
        self.failure_reason = reason


@dataclass
class PendingSnapshot:
    """
    待支付快照 - 下单时缓存的购物车与用户信息

    网关回调不会回传商品明细，支付确认后只能依据快照生成订单明细。
    """

    order_id: str
    user_id: str
    user_email: Optional[str]
    cart: list[CartLine]
    amount: Decimal
    currency: str
    discount_percent: Decimal = field(default_factory=lambda: Decimal("0"))
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.cart:
            raise DomainValidationException("购物车不能为空", field="cart")
        self.created_at = _ensure_utc(self.created_at)

    def line_items(self) -> list["OrderLineItem"]:
        """按快照中记录的折扣生成订单明细（与报价金额一致）"""
        from domain.order.pricing import discounted_unit_price

        return [
            OrderLineItem(
                order_id=self.order_id,
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price=discounted_unit_price(line.unit_price, self.discount_percent),
            )
            for line in self.cart
        ]


@dataclass
class OrderLineItem:
    """订单明细"""
    order_id: str
    item_id: str
    quantity: int
    unit_price: Decimal
    id: Optional[int] = None


@dataclass
class PaymentRecord:
    """支付流水（按网关支付ID幂等）"""
    payment_id: str
    order_id: str
    amount: Optional[Decimal]
    status: str
    raw_payload: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
