"""
Order and payment-notification routes.

Keep this thin: validation lives in DTOs, business rules in the
application services, gateway details in the infrastructure adapter.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette import status as http_status

from api.dependencies import (
    get_order_store_service,
    get_order_service,
    get_webhook_service,
)
from api.utils.network import ip_allowed
from application.dtos.orders import CreateOrderRequest, VerifyOrderRequest
from application.services.order_service import OrderApplicationService, OrderStoreService
from application.services.reconciliation_service import ReconcileOutcome, ReconcileResult
from application.services.webhook_service import WebhookService
from core.i18n import t, get_locale
from core.logging_config import get_logger
from core.response import error_json, success_response
from core.settings import payment_settings
from shared.codes import BusinessCode


router = APIRouter(tags=["Orders"])
logger = get_logger(__name__)


@router.post("/create-order", summary="Create order and payment session")
async def create_order(
    payload: CreateOrderRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    result = await service.create_order(payload)
    return success_response(data=result.dump(), message=t("Order created"))


@router.post("/webhook", summary="Gateway payment notification")
async def payment_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    # Optional IP allowlist; rejected deliveries are still acknowledged
    allowlist = payment_settings.webhook.ip_allowlist or []
    remote_ip = getattr(request.state, "client_ip", None)
    if not ip_allowed(remote_ip, allowlist):
        logger.warning("webhook_ip_not_allowed", remote_ip=remote_ip)
        rejected = ReconcileResult(ReconcileOutcome.REJECTED, reason="ip_not_allowed")
        return success_response(data=rejected.as_dict(), message=t("Webhook acknowledged"))

    raw_body = await request.body()
    result = await service.handle(request.headers, raw_body)

    if result.should_retry:
        # non-2xx makes the gateway redeliver later
        return error_json(
            http_status.HTTP_503_SERVICE_UNAVAILABLE,
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=t("Temporarily unable to process notification, please retry"),
            error_type="ReconcileRetry",
            details=result.as_dict(),
            request_id=getattr(request.state, "request_id", None),
            locale=get_locale(),
        )
    return success_response(data=result.as_dict(), message=t("Webhook acknowledged"))


@router.post("/verify-order", summary="Actively verify order payment status")
async def verify_order(
    payload: VerifyOrderRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    result = await service.verify_order(payload.order_id)
    return success_response(data=result.dump(), message=t("Order status"))


@router.get("/order/{order_id}", summary="Order status probe")
async def probe_order(
    order_id: str,
    service: OrderStoreService = Depends(get_order_store_service),
):
    result = await service.probe_order(order_id)
    return success_response(data=result.dump(), message=t("Order status"))
