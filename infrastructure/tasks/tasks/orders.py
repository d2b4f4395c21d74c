"""Periodic order sweeps.

- orders.reconcile_stale: actively verify orders stuck in PENDING, the
  fallback when a webhook never arrives.
- orders.purge_snapshots: drop cart snapshots of failed orders past retention.

Each run uses asyncio.run with its own engine, because pooled async
connections are bound to the event loop that opened them.
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from celery import shared_task

from application.ports.payment_gateway import PaymentGateway
from application.services.order_service import OrderApplicationService, OrderStoreService
from application.services.reconciliation_service import ReconciliationService
from core.config import settings
from core.logging_config import get_logger
from core.settings import order_settings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import build_engine, build_session_factory
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import sqlalchemy_uow_factory
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


async def run_reconcile_stale(
    uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
    gateway: Optional[PaymentGateway] = None,
) -> dict:
    engine = None
    if uow_factory is None:
        engine = build_engine(settings.database.url, echo=settings.database.echo)
        uow_factory = sqlalchemy_uow_factory(build_session_factory(engine))
    owns_gateway = gateway is None
    gateway = gateway or get_payment_gateway()
    try:
        service = OrderApplicationService(
            uow_factory,
            gateway,
            ReconciliationService(uow_factory),
            policy=order_settings,
            public_base_url=settings.PUBLIC_BASE_URL,
            api_prefix=settings.API_PREFIX,
            order_note=payment_settings.cashfree.order_note,
        )
        report = await service.reconcile_stale()
        return report.as_dict()
    finally:
        if owns_gateway:
            await gateway.aclose()
        if engine is not None:
            await engine.dispose()


async def run_purge_snapshots(uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None) -> dict:
    engine = None
    if uow_factory is None:
        engine = build_engine(settings.database.url, echo=settings.database.echo)
        uow_factory = sqlalchemy_uow_factory(build_session_factory(engine))
    try:
        purged = await OrderStoreService(uow_factory).purge_snapshots(
            order_settings.snapshot_retention_seconds,
            limit=order_settings.sweep_batch_size,
        )
        return {"purged": purged}
    finally:
        if engine is not None:
            await engine.dispose()


@shared_task(
    name="orders.reconcile_stale",
    bind=True,
    base=BaseTask,
)
def reconcile_stale_orders(self) -> dict:
    logger.info("sweep_stale_orders_started")
    return asyncio.run(run_reconcile_stale())


@shared_task(name="orders.purge_snapshots", bind=True, base=BaseTask)
def purge_stale_snapshots(self) -> dict:
    return asyncio.run(run_purge_snapshots())
