"""
API依赖项 - 组合根：为路由装配应用服务
"""
from typing import AsyncIterator, Callable

from fastapi import Depends

from application.ports.payment_gateway import PaymentGateway
from application.services.order_service import OrderApplicationService, OrderStoreService
from application.services.reconciliation_service import ReconciliationService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.settings import order_settings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import sqlalchemy_uow_factory


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return sqlalchemy_uow_factory()


async def provide_payment_gateway() -> AsyncIterator[PaymentGateway]:
    """每个请求一个网关客户端，请求结束后释放连接"""
    gateway = get_payment_gateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


def get_reconciliation_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> ReconciliationService:
    return ReconciliationService(uow_factory)


def get_webhook_service(
    reconciler: ReconciliationService = Depends(get_reconciliation_service),
) -> WebhookService:
    return WebhookService(
        reconciler,
        secret=payment_settings.cashfree.signing_secret,
        tolerance_seconds=payment_settings.webhook.tolerance_seconds,
    )


def get_order_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(provide_payment_gateway),
    reconciler: ReconciliationService = Depends(get_reconciliation_service),
) -> OrderApplicationService:
    return OrderApplicationService(
        uow_factory,
        gateway,
        reconciler,
        policy=order_settings,
        public_base_url=settings.PUBLIC_BASE_URL,
        api_prefix=settings.API_PREFIX,
        order_note=payment_settings.cashfree.order_note,
    )


def get_order_store_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> OrderStoreService:
    return OrderStoreService(uow_factory)
