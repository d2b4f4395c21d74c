"""Pytest bootstrap configuration.

Environment is set before application modules are imported, because
settings objects are built at import time.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("PUBLIC_BASE_URL", "https://shop.example.com")
os.environ.setdefault("CASHFREE__CLIENT_ID", "cf-test-client")
os.environ.setdefault("CASHFREE__CLIENT_SECRET", "cf-test-secret")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.order.entity import CartLine, Order, OrderStatus, PendingSnapshot
from tests.fakes import InMemoryStore, fake_uow_factory


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return fake_uow_factory(store)


@pytest.fixture
def seed_pending(store):
    """Place a PENDING order header and its cart snapshot in the store."""

    def _seed(
        order_id: str = "order_1700000000000_abc123",
        *,
        cart=None,
        amount: Decimal = Decimal("250.00"),
        created_at=None,
        with_header: bool = True,
    ):
        cart = cart or [
            CartLine(item_id="sku-1", unit_price=Decimal("100.00"), quantity=2),
            CartLine(item_id="sku-2", unit_price=Decimal("50.00"), quantity=1),
        ]
        created_at = created_at or datetime.now(timezone.utc) - timedelta(minutes=1)
        if with_header:
            store.orders[order_id] = Order(
                id=order_id,
                user_id="user-1",
                user_email="buyer@example.com",
                status=OrderStatus.PENDING,
                total_amount=amount,
                currency="INR",
                created_at=created_at,
                updated_at=created_at,
            )
        store.snapshots[order_id] = PendingSnapshot(
            order_id=order_id,
            user_id="user-1",
            user_email="buyer@example.com",
            cart=cart,
            amount=amount,
            currency="INR",
            created_at=created_at,
        )
        return order_id

    return _seed
