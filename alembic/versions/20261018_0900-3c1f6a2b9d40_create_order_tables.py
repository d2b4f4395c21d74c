"""create_order_tables

Revision ID: 3c1f6a2b9d40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f6a2b9d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 订单头
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.String(length=128), nullable=False, comment='用户ID'),
        sa.Column('user_email', sa.String(length=255), nullable=True, comment='用户邮箱'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING',
                  comment='订单状态: PENDING/PREPARING/FAILED/NEEDS_RECONCILIATION'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='订单金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码 ISO-4217'),
        sa.Column('payment_id', sa.String(length=128), nullable=True, comment='网关支付ID'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败/待对账原因'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_payment_id', 'orders', ['payment_id'], unique=False)
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'], unique=False)

    # 待支付快照
    op.create_table(
        'pending_orders',
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.String(length=128), nullable=False, comment='用户ID'),
        sa.Column('user_email', sa.String(length=255), nullable=True, comment='用户邮箱'),
        sa.Column('cart', sa.JSON(), nullable=False, comment='购物车 [{id, price, quantity}]'),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='报价金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码'),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0',
                  comment='报价时的折扣'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('order_id', name='pk_pending_orders'),
    )
    op.create_index('ix_pending_orders_created_at', 'pending_orders', ['created_at'], unique=False)

    # 订单明细
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='订单ID'),
        sa.Column('item_id', sa.String(length=128), nullable=False, comment='商品ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='数量'),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False, comment='折后单价'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE', name='fk_order_items_order_id_orders'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.UniqueConstraint('order_id', 'item_id', name='uq_order_items_order_item'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)

    # 支付流水
    op.create_table(
        'payment_ledger',
        sa.Column('payment_id', sa.String(length=128), nullable=False, comment='网关支付ID'),
        sa.Column('order_id', sa.String(length=64), nullable=False, comment='订单ID'),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True, comment='支付金额'),
        sa.Column('status', sa.String(length=32), nullable=False, comment='网关支付状态'),
        sa.Column('raw_payload', sa.JSON(), nullable=True, comment='原始回调报文（审计）'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, comment='记录时间'),
        sa.PrimaryKeyConstraint('payment_id', name='pk_payment_ledger'),
    )
    op.create_index('ix_payment_ledger_order_id', 'payment_ledger', ['order_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payment_ledger_order_id', table_name='payment_ledger')
    op.drop_table('payment_ledger')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_pending_orders_created_at', table_name='pending_orders')
    op.drop_table('pending_orders')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_payment_id', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
