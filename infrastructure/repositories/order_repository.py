"""
订单仓储实现 - 使用SQLAlchemy实现数据访问

幂等写入统一走 `INSERT ... ON CONFLICT DO NOTHING`（MySQL 为 `INSERT IGNORE`），
状态转换统一走带条件的 `UPDATE ... WHERE status = :expected`，
由数据库保证并发投递下的原子性。
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Sequence

from sqlalchemy import select, update, delete, func, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from domain.order.entity import (
    CartLine,
    Order,
    OrderLineItem,
    OrderStatus,
    PaymentRecord,
    PendingSnapshot,
)
from domain.order.repository import (
    OrderRepository,
    PendingSnapshotRepository,
    OrderItemRepository,
    PaymentLedgerRepository,
)
from infrastructure.models.order import (
    OrderModel,
    PendingSnapshotModel,
    OrderItemModel,
    PaymentLedgerModel,
)
from core.logging_config import get_logger


logger = get_logger(__name__)


async def insert_ignore(session: AsyncSession, model, rows: Sequence[dict]) -> int:
    """不存在才插入，返回实际插入行数"""
    if not rows:
        return 0
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(list(rows)).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(list(rows)).on_conflict_do_nothing()
    elif dialect in {"mysql", "mariadb"}:
        stmt = insert(model).values(list(rows)).prefix_with("IGNORE")
    else:
        raise NotImplementedError(f"insert-if-absent not supported for dialect {dialect}")
    result = await session.execute(stmt)
    return max(result.rowcount or 0, 0)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            user_id=model.user_id,
            user_email=model.user_email,
            status=OrderStatus(model.status),
            total_amount=Decimal(str(model.total_amount)),
            currency=model.currency,
            payment_id=model.payment_id,
            paid_at=model.paid_at,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_row(self, entity: Order) -> dict:
        now = datetime.now(timezone.utc)
        return {
            "id": entity.id,
            "user_id": entity.user_id,
            "user_email": entity.user_email,
            "status": entity.status.value,
            "total_amount": entity.total_amount,
            "currency": entity.currency,
            "payment_id": entity.payment_id,
            "paid_at": entity.paid_at,
            "failure_reason": entity.failure_reason,
            "created_at": entity.created_at or now,
            "updated_at": entity.updated_at or now,
        }

    async def get(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.id == order_id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def add(self, order: Order) -> Order:
        db_order = OrderModel(**self._to_row(order))
        self.session.add(db_order)
        await self.session.flush()
        logger.info("order_row_created", order_id=order.id, status=order.status.value)
        return self._to_entity(db_order)

    async def add_if_absent(self, order: Order) -> bool:
        inserted = await insert_ignore(self.session, OrderModel, [self._to_row(order)])
        return inserted == 1

    async def update_status_if(self, order_id: str, expected: OrderStatus, order: Order) -> bool:
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected.value)
            .values(
                status=order.status.value,
                payment_id=order.payment_id,
                paid_at=order.paid_at,
                failure_reason=order.failure_reason,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        updated = result.rowcount == 1
        logger.info(
            "order_status_cas",
            order_id=order_id,
            expected=expected.value,
            target=order.status.value,
            updated=updated,
        )
        return updated

    async def attach_payment_id(self, order_id: str, payment_id: str) -> bool:
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.payment_id.is_(None))
            .values(payment_id=payment_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_by_status(
        self,
        status: OrderStatus,
        created_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        query = select(OrderModel).where(OrderModel.status == status.value)
        if created_before is not None:
            query = query.where(OrderModel.created_at < created_before)
        query = query.order_by(OrderModel.created_at.asc()).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyPendingSnapshotRepository(PendingSnapshotRepository):
    """待支付快照仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PendingSnapshotModel) -> PendingSnapshot:
        return PendingSnapshot(
            order_id=model.order_id,
            user_id=model.user_id,
            user_email=model.user_email,
            cart=[CartLine.from_dict(raw) for raw in (model.cart or [])],
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            discount_percent=Decimal(str(model.discount_percent or 0)),
            created_at=model.created_at,
        )

    async def get(self, order_id: str) -> Optional[PendingSnapshot]:
        result = await self.session.execute(
            select(PendingSnapshotModel).where(PendingSnapshotModel.order_id == order_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def add(self, snapshot: PendingSnapshot) -> None:
        self.session.add(PendingSnapshotModel(
            order_id=snapshot.order_id,
            user_id=snapshot.user_id,
            user_email=snapshot.user_email,
            cart=[line.to_dict() for line in snapshot.cart],
            amount=snapshot.amount,
            currency=snapshot.currency,
            discount_percent=snapshot.discount_percent,
            created_at=snapshot.created_at or datetime.now(timezone.utc),
        ))
        await self.session.flush()

    async def delete(self, order_id: str) -> bool:
        result = await self.session.execute(
            delete(PendingSnapshotModel)
            .where(PendingSnapshotModel.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info("pending_snapshot_deleted", order_id=order_id)
        return deleted

    async def list_orphaned(self, created_before: datetime, limit: int = 100) -> List[str]:
        result = await self.session.execute(
            select(PendingSnapshotModel.order_id)
            .join(OrderModel, OrderModel.id == PendingSnapshotModel.order_id)
            .where(
                OrderModel.status == OrderStatus.FAILED.value,
                PendingSnapshotModel.created_at < created_before,
            )
            .order_by(PendingSnapshotModel.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())


class SQLAlchemyOrderItemRepository(OrderItemRepository):
    """订单明细仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count(self, order_id: str) -> int:
        result = await self.session.execute(
            select(func.count(OrderItemModel.id)).where(OrderItemModel.order_id == order_id)
        )
        return int(result.scalar_one())

    async def list(self, order_id: str) -> List[OrderLineItem]:
        result = await self.session.execute(
            select(OrderItemModel)
            .where(OrderItemModel.order_id == order_id)
            .order_by(OrderItemModel.id.asc())
        )
        return [
            OrderLineItem(
                id=m.id,
                order_id=m.order_id,
                item_id=m.item_id,
                quantity=m.quantity,
                unit_price=Decimal(str(m.unit_price)),
            )
            for m in result.scalars().all()
        ]

    async def add_many_if_absent(self, items: List[OrderLineItem]) -> int:
        rows = [
            {
                "order_id": item.order_id,
                "item_id": item.item_id,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in items
        ]
        inserted = await insert_ignore(self.session, OrderItemModel, rows)
        if items:
            logger.info("order_items_inserted", order_id=items[0].order_id, inserted=inserted, total=len(items))
        return inserted


class SQLAlchemyPaymentLedgerRepository(PaymentLedgerRepository):
    """支付流水仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_if_absent(self, record: PaymentRecord) -> bool:
        inserted = await insert_ignore(self.session, PaymentLedgerModel, [{
            "payment_id": record.payment_id,
            "order_id": record.order_id,
            "amount": record.amount,
            "status": record.status,
            "raw_payload": record.raw_payload,
            "created_at": record.created_at or datetime.now(timezone.utc),
        }])
        if not inserted:
            logger.info("payment_ledger_duplicate", payment_id=record.payment_id, order_id=record.order_id)
        return inserted == 1

    async def get(self, payment_id: str) -> Optional[PaymentRecord]:
        result = await self.session.execute(
            select(PaymentLedgerModel).where(PaymentLedgerModel.payment_id == payment_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return PaymentRecord(
            payment_id=model.payment_id,
            order_id=model.order_id,
            amount=Decimal(str(model.amount)) if model.amount is not None else None,
            status=model.status,
            raw_payload=model.raw_payload or {},
            created_at=model.created_at,
        )
