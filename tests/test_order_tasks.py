from datetime import datetime, timedelta, timezone

import pytest

from domain.order.entity import OrderStatus
from infrastructure.tasks import celery_app
from infrastructure.tasks.tasks import orders as order_tasks
from tests.fakes import FakeGateway


@pytest.mark.asyncio
async def test_run_reconcile_stale_uses_injected_dependencies(store, seed_pending, uow_factory):
    order_id = seed_pending(created_at=datetime.now(timezone.utc) - timedelta(hours=1))
    gateway = FakeGateway(order_status="EXPIRED")

    report = await order_tasks.run_reconcile_stale(uow_factory=uow_factory, gateway=gateway)

    assert report == {"scanned": 1, "settled": 1, "still_pending": 0, "errors": 0}
    assert store.orders[order_id].status is OrderStatus.FAILED
    # injected gateways belong to the caller
    assert gateway.closed is False


@pytest.mark.asyncio
async def test_run_purge_snapshots(store, seed_pending, uow_factory):
    order_id = seed_pending(created_at=datetime.now(timezone.utc) - timedelta(days=30))
    store.orders[order_id].mark_failed("EXPIRED")

    assert await order_tasks.run_purge_snapshots(uow_factory=uow_factory) == {"purged": 1}
    assert order_id not in store.snapshots


def test_tasks_are_registered_and_routed():
    assert celery_app.conf.task_routes["orders.reconcile_stale"] == {"queue": "default"}
    schedule = celery_app.conf.beat_schedule
    assert {entry["task"] for entry in schedule.values()} == {"orders.reconcile_stale", "orders.purge_snapshots"}


def test_celery_task_runs_the_sweep(monkeypatch):
    async def fake_run():
        return {"scanned": 0, "settled": 0, "still_pending": 0, "errors": 0}

    monkeypatch.setattr(order_tasks, "run_reconcile_stale", fake_run)

    result = order_tasks.reconcile_stale_orders.apply()

    assert result.successful()
    assert result.get() == {"scanned": 0, "settled": 0, "still_pending": 0, "errors": 0}
