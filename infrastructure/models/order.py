"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey, UniqueConstraint
)

from .base import Base, utcnow


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, comment="订单ID")
    user_id = Column(String(128), nullable=False, index=True, comment="用户ID")
    user_email = Column(String(255), nullable=True, comment="用户邮箱")

    status = Column(
        String(32),
        nullable=False,
        default="PENDING",
        index=True,
        comment="订单状态: PENDING/PREPARING/FAILED/NEEDS_RECONCILIATION"
    )

    total_amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="订单金额")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码 ISO-4217")

    payment_id = Column(String(128), nullable=True, index=True, comment="网关支付ID")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")
    failure_reason = Column(Text, nullable=True, comment="失败/待对账原因")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, comment="创建时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_orders_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', status='{self.status}', amount={self.total_amount})>"


class PendingSnapshotModel(Base):
    """待支付快照：支付确认前唯一保存完整购物车的地方"""
    __tablename__ = "pending_orders"

    order_id = Column(String(64), primary_key=True, comment="订单ID")
    user_id = Column(String(128), nullable=False, comment="用户ID")
    user_email = Column(String(255), nullable=True, comment="用户邮箱")
    cart = Column(JSON, nullable=False, comment="购物车 [{id, price, quantity}]")
    amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="报价金额")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码")
    discount_percent = Column(Numeric(precision=5, scale=2), nullable=False, default=0, comment="报价时的折扣")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True, comment="创建时间")

    def __repr__(self):
        return f"<PendingSnapshotModel(order_id='{self.order_id}', amount={self.amount})>"


class OrderItemModel(Base):
    """订单明细"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID"
    )
    item_id = Column(String(128), nullable=False, comment="商品ID")
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(Numeric(precision=12, scale=2), nullable=False, comment="折后单价")

    __table_args__ = (
        UniqueConstraint("order_id", "item_id", name="uq_order_items_order_item"),
    )

    def __repr__(self):
        return f"<OrderItemModel(order_id='{self.order_id}', item_id='{self.item_id}', qty={self.quantity})>"


class PaymentLedgerModel(Base):
    """支付流水：网关支付ID唯一，重复插入即视为已处理"""
    __tablename__ = "payment_ledger"

    payment_id = Column(String(128), primary_key=True, comment="网关支付ID")
    order_id = Column(String(64), nullable=False, index=True, comment="订单ID")
    amount = Column(Numeric(precision=12, scale=2), nullable=True, comment="支付金额")
    status = Column(String(32), nullable=False, comment="网关支付状态")
    raw_payload = Column(JSON, nullable=True, comment="原始回调报文（审计）")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, comment="记录时间")

    def __repr__(self):
        return f"<PaymentLedgerModel(payment_id='{self.payment_id}', order_id='{self.order_id}')>"
