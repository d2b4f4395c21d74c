"""In-memory doubles for the unit of work, repositories and payment gateway.

Repositories mirror the atomic contracts of the SQL implementation:
insert-if-absent and compare-and-set on status.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from application.dtos.payments import (
    CreatePaymentSession,
    PaymentSession,
    RemoteOrder,
    RemotePayment,
)
from domain.common.exceptions import OrderStoreUnavailableException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    Order,
    OrderLineItem,
    OrderStatus,
    PaymentRecord,
    PendingSnapshot,
)
from domain.order.repository import (
    OrderItemRepository,
    OrderRepository,
    PaymentLedgerRepository,
    PendingSnapshotRepository,
)

# Signs test webhooks; matches CASHFREE__CLIENT_SECRET set in conftest
WEBHOOK_SECRET = "cf-test-secret"


class InMemoryStore:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.snapshots: dict[str, PendingSnapshot] = {}
        self.items: dict[str, dict[str, OrderLineItem]] = {}
        self.ledger: dict[str, PaymentRecord] = {}
        # operation name -> remaining failures
        self.failures: dict[str, int] = {}
        self.calls: list[str] = []

    def fail(self, operation: str, times: int = 1) -> None:
        self.failures[operation] = times

    def touch(self, operation: str) -> None:
        self.calls.append(operation)
        remaining = self.failures.get(operation, 0)
        if remaining > 0:
            self.failures[operation] = remaining - 1
            raise OrderStoreUnavailableException(operation, "injected failure")

    def item_count(self, order_id: str) -> int:
        return len(self.items.get(order_id, {}))


class FakeOrderRepository(OrderRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, order_id: str) -> Optional[Order]:
        self.store.touch("orders.get")
        order = self.store.orders.get(order_id)
        return replace(order) if order else None

    async def add(self, order: Order) -> Order:
        self.store.touch("orders.add")
        if order.id in self.store.orders:
            raise ValueError(f"duplicate order {order.id}")
        self.store.orders[order.id] = replace(order)
        return order

    async def add_if_absent(self, order: Order) -> bool:
        self.store.touch("orders.add_if_absent")
        if order.id in self.store.orders:
            return False
        self.store.orders[order.id] = replace(order)
        return True

    async def update_status_if(self, order_id: str, expected: OrderStatus, order: Order) -> bool:
        self.store.touch("orders.update_status_if")
        current = self.store.orders.get(order_id)
        if current is None or current.status is not expected:
            return False
        current.status = order.status
        current.payment_id = order.payment_id
        current.paid_at = order.paid_at
        current.failure_reason = order.failure_reason
        current.updated_at = order.updated_at
        return True

    async def attach_payment_id(self, order_id: str, payment_id: str) -> bool:
        self.store.touch("orders.attach_payment_id")
        current = self.store.orders.get(order_id)
        if current is None or current.payment_id is not None:
            return False
        current.payment_id = payment_id
        return True

    async def list_by_status(self, status: OrderStatus, created_before: Optional[datetime] = None, limit: int = 100):
        self.store.touch("orders.list_by_status")
        found = [
            replace(o) for o in self.store.orders.values()
            if o.status is status and (created_before is None or o.created_at < created_before)
        ]
        found.sort(key=lambda o: o.created_at)
        return found[:limit]


class FakeSnapshotRepository(PendingSnapshotRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, order_id: str) -> Optional[PendingSnapshot]:
        self.store.touch("snapshots.get")
        return self.store.snapshots.get(order_id)

    async def add(self, snapshot: PendingSnapshot) -> None:
        self.store.touch("snapshots.add")
        self.store.snapshots[snapshot.order_id] = snapshot

    async def delete(self, order_id: str) -> bool:
        self.store.touch("snapshots.delete")
        return self.store.snapshots.pop(order_id, None) is not None

    async def list_orphaned(self, created_before: datetime, limit: int = 100):
        self.store.touch("snapshots.list_orphaned")
        ids = [
            s.order_id for s in self.store.snapshots.values()
            if s.created_at < created_before
            and s.order_id in self.store.orders
            and self.store.orders[s.order_id].status is OrderStatus.FAILED
        ]
        return ids[:limit]


class FakeOrderItemRepository(OrderItemRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def count(self, order_id: str) -> int:
        self.store.touch("order_items.count")
        return self.store.item_count(order_id)

    async def list(self, order_id: str):
        self.store.touch("order_items.list")
        return list(self.store.items.get(order_id, {}).values())

    async def add_many_if_absent(self, items) -> int:
        self.store.touch("order_items.add_many_if_absent")
        inserted = 0
        for item in items:
            bucket = self.store.items.setdefault(item.order_id, {})
            if item.item_id not in bucket:
                bucket[item.item_id] = item
                inserted += 1
        return inserted


class FakePaymentLedgerRepository(PaymentLedgerRepository):
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def add_if_absent(self, record: PaymentRecord) -> bool:
        self.store.touch("payments.add_if_absent")
        if record.payment_id in self.store.ledger:
            return False
        self.store.ledger[record.payment_id] = record
        return True

    async def get(self, payment_id: str) -> Optional[PaymentRecord]:
        self.store.touch("payments.get")
        return self.store.ledger.get(payment_id)


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store
        self.orders = FakeOrderRepository(store)
        self.snapshots = FakeSnapshotRepository(store)
        self.order_items = FakeOrderItemRepository(store)
        self.payments = FakePaymentLedgerRepository(store)

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


def fake_uow_factory(store: InMemoryStore):
    def _factory(*, readonly: bool = False) -> FakeUnitOfWork:
        return FakeUnitOfWork(store, readonly=readonly)

    return _factory


class FakeGateway:
    provider = "fake"
    env_mode = "sandbox"

    def __init__(
        self,
        *,
        order_status: str = "ACTIVE",
        order_amount: Optional[Decimal] = None,
        payments: Optional[list[RemotePayment]] = None,
        session_id: str = "session_test_123",
        error: Optional[Exception] = None,
    ) -> None:
        self.order_status = order_status
        self.order_amount = order_amount
        self.payments = payments or []
        self.session_id = session_id
        self.error = error
        self.sessions: list[CreatePaymentSession] = []
        self.fetched: list[str] = []
        self.closed = False

    async def create_payment_session(self, req: CreatePaymentSession) -> PaymentSession:
        if self.error is not None:
            raise self.error
        self.sessions.append(req)
        return PaymentSession(order_id=req.order_id, payment_session_id=self.session_id, provider=self.provider)

    async def fetch_order(self, order_id: str) -> RemoteOrder:
        if self.error is not None:
            raise self.error
        self.fetched.append(order_id)
        return RemoteOrder(
            order_id=order_id,
            status=self.order_status,
            amount=self.order_amount,
            provider=self.provider,
            raw={"order_id": order_id, "order_status": self.order_status},
        )

    async def fetch_payments(self, order_id: str) -> list[RemotePayment]:
        return list(self.payments)

    async def aclose(self) -> None:
        self.closed = True
