"""Repository and unit-of-work behaviour against a real SQLite database."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from application.dtos.orders import CreateOrderRequest
from application.services.event_normalizer import normalize
from application.services.order_service import OrderApplicationService, OrderStoreService
from application.services.reconciliation_service import ReconcileOutcome, ReconciliationService
from core.settings import OrderPolicy
from domain.common.exceptions import OrderStoreUnavailableException
from domain.order.entity import CartLine, Order, OrderLineItem, OrderStatus, PaymentRecord, PendingSnapshot
from infrastructure.database import build_engine, build_session_factory, create_tables, drop_tables
from infrastructure.unit_of_work import sqlalchemy_uow_factory
from tests.fakes import FakeGateway


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def sql_uow_factory(engine):
    return sqlalchemy_uow_factory(build_session_factory(engine))


def _order(order_id="order_1", status=OrderStatus.PENDING, created_at=None):
    return Order(
        id=order_id,
        user_id="u1",
        user_email="u1@example.com",
        status=status,
        total_amount=Decimal("120.00"),
        currency="INR",
        created_at=created_at,
    )


def _snapshot(order_id="order_1", created_at=None):
    return PendingSnapshot(
        order_id=order_id,
        user_id="u1",
        user_email="u1@example.com",
        cart=[CartLine(item_id="sku-1", unit_price=Decimal("60.00"), quantity=2)],
        amount=Decimal("120.00"),
        currency="INR",
        created_at=created_at,
    )


@pytest.mark.asyncio
async def test_ledger_insert_if_absent(sql_uow_factory):
    record = PaymentRecord(payment_id="pay_1", order_id="order_1", amount=Decimal("1.00"),
                           status="SUCCESS", raw_payload={"a": 1})
    async with sql_uow_factory() as uow:
        assert await uow.payments.add_if_absent(record) is True
    async with sql_uow_factory() as uow:
        assert await uow.payments.add_if_absent(record) is False
    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.payments.get("pay_1")
    assert stored.raw_payload == {"a": 1}
    assert stored.amount == Decimal("1.00")


@pytest.mark.asyncio
async def test_status_compare_and_set(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.orders.add(_order())

    paid = _order()
    paid.mark_preparing("pay_1")
    async with sql_uow_factory() as uow:
        assert await uow.orders.update_status_if("order_1", OrderStatus.PENDING, paid) is True
    async with sql_uow_factory() as uow:
        assert await uow.orders.update_status_if("order_1", OrderStatus.PENDING, paid) is False

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.orders.get("order_1")
    assert stored.status is OrderStatus.PREPARING
    assert stored.payment_id == "pay_1"
    assert stored.paid_at.tzinfo is not None


@pytest.mark.asyncio
async def test_payment_id_attached_only_once(sql_uow_factory):
    paid = _order()
    paid.mark_preparing(None)
    async with sql_uow_factory() as uow:
        await uow.orders.add(paid)

    async with sql_uow_factory() as uow:
        assert await uow.orders.attach_payment_id("order_1", "cf_987") is True
    async with sql_uow_factory() as uow:
        assert await uow.orders.attach_payment_id("order_1", "cf_988") is False

    async with sql_uow_factory(readonly=True) as uow:
        stored = await uow.orders.get("order_1")
    assert stored.status is OrderStatus.PREPARING
    assert stored.payment_id == "cf_987"


@pytest.mark.asyncio
async def test_order_add_if_absent(sql_uow_factory):
    async with sql_uow_factory() as uow:
        assert await uow.orders.add_if_absent(_order()) is True
    async with sql_uow_factory() as uow:
        assert await uow.orders.add_if_absent(_order()) is False


@pytest.mark.asyncio
async def test_items_insert_ignores_existing_rows(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.orders.add(_order())
    items = [
        OrderLineItem(order_id="order_1", item_id="a", quantity=1, unit_price=Decimal("10.00")),
        OrderLineItem(order_id="order_1", item_id="b", quantity=2, unit_price=Decimal("5.00")),
    ]
    async with sql_uow_factory() as uow:
        assert await uow.order_items.add_many_if_absent(items) == 2
    async with sql_uow_factory() as uow:
        assert await uow.order_items.add_many_if_absent(items) == 0
    async with sql_uow_factory(readonly=True) as uow:
        assert await uow.order_items.count("order_1") == 2
        listed = await uow.order_items.list("order_1")
    assert [i.item_id for i in listed] == ["a", "b"]


@pytest.mark.asyncio
async def test_snapshot_round_trip_and_delete(sql_uow_factory):
    async with sql_uow_factory() as uow:
        await uow.snapshots.add(_snapshot())
    async with sql_uow_factory(readonly=True) as uow:
        snap = await uow.snapshots.get("order_1")
    assert snap.cart == [CartLine(item_id="sku-1", unit_price=Decimal("60.00"), quantity=2)]
    async with sql_uow_factory() as uow:
        assert await uow.snapshots.delete("order_1") is True
    async with sql_uow_factory() as uow:
        assert await uow.snapshots.delete("order_1") is False


@pytest.mark.asyncio
async def test_purge_only_touches_old_failed_snapshots(sql_uow_factory):
    old = datetime.now(timezone.utc) - timedelta(days=10)
    async with sql_uow_factory() as uow:
        failed = _order("order_failed", created_at=old)
        failed.mark_failed("EXPIRED")
        await uow.orders.add(failed)
        await uow.snapshots.add(_snapshot("order_failed", created_at=old))
        await uow.orders.add(_order("order_pending", created_at=old))
        await uow.snapshots.add(_snapshot("order_pending", created_at=old))

    purged = await OrderStoreService(sql_uow_factory).purge_snapshots(retention_seconds=7 * 24 * 3600)

    assert purged == 1
    async with sql_uow_factory(readonly=True) as uow:
        assert await uow.snapshots.get("order_failed") is None
        assert await uow.snapshots.get("order_pending") is not None


@pytest.mark.asyncio
async def test_list_by_status_filters_by_age(sql_uow_factory):
    now = datetime.now(timezone.utc)
    async with sql_uow_factory() as uow:
        await uow.orders.add(_order("order_old", created_at=now - timedelta(hours=1)))
        await uow.orders.add(_order("order_new", created_at=now))
    async with sql_uow_factory(readonly=True) as uow:
        stale = await uow.orders.list_by_status(OrderStatus.PENDING, created_before=now - timedelta(minutes=15))
    assert [o.id for o in stale] == ["order_old"]


@pytest.mark.asyncio
async def test_store_errors_surface_as_domain_exception(engine, sql_uow_factory):
    await drop_tables(engine)
    with pytest.raises(OrderStoreUnavailableException):
        async with sql_uow_factory(readonly=True) as uow:
            await uow.orders.get("order_1")


@pytest.mark.asyncio
async def test_create_then_webhook_end_to_end(sql_uow_factory):
    gateway = FakeGateway()
    service = OrderApplicationService(
        sql_uow_factory,
        gateway,
        ReconciliationService(sql_uow_factory),
        policy=OrderPolicy(),
        public_base_url="https://shop.example.com",
    )
    created = await service.create_order(CreateOrderRequest.model_validate({
        "cart": [{"id": "sku-1", "price": "60.00", "quantity": 2}, {"id": 7, "price": "15.50", "quantity": 1}],
        "user": {"uid": "u1", "email": "u1@example.com"},
        "amount": "135.50",
    }))
    order_id = created.order_id

    event = normalize({
        "data": {
            "order": {"order_id": order_id, "order_amount": 135.5},
            "payment": {"cf_payment_id": 991, "payment_status": "SUCCESS", "payment_amount": 135.5},
        },
    })
    reconciler = ReconciliationService(sql_uow_factory)
    first = await reconciler.reconcile(event)
    second = await reconciler.reconcile(event)

    assert first.outcome is ReconcileOutcome.APPLIED
    assert second.outcome is ReconcileOutcome.DUPLICATE
    async with sql_uow_factory(readonly=True) as uow:
        order = await uow.orders.get(order_id)
        assert await uow.order_items.count(order_id) == 2
        assert await uow.snapshots.get(order_id) is None
    assert order.status is OrderStatus.PREPARING
    assert order.payment_id == "991"
