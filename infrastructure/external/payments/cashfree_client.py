"""
Cashfree PG adapter (REST, API version 2023-08-01).

- POST /orders creates a hosted-checkout order and returns `payment_session_id`.
- GET /orders/{order_id} returns the order entity with `order_status`
  (ACTIVE, PAID, EXPIRED, TERMINATED ...).
- GET /orders/{order_id}/payments lists payment attempts with `payment_status`.

Requests authenticate with `x-client-id` / `x-client-secret` headers.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    CreatePaymentSession,
    PaymentSession,
    RemoteOrder,
    RemotePayment,
)
from core.settings import CashfreeSettings, PaymentSettings, payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError


def _amount(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class CashfreeClient(BasePaymentClient):
    provider = "cashfree"

    def __init__(
        self,
        config: Optional[CashfreeSettings] = None,
        *,
        settings: PaymentSettings = payment_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = config or settings.cashfree
        if not cfg.client_id or not cfg.client_secret:
            raise RuntimeError("CASHFREE__CLIENT_ID / CASHFREE__CLIENT_SECRET not configured")
        super().__init__(
            base_url=cfg.base_url,
            headers={
                "x-client-id": cfg.client_id,
                "x-client-secret": cfg.client_secret,
                "x-api-version": cfg.api_version,
                "accept": "application/json",
            },
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
            transport=transport,
        )
        self.env_mode = cfg.env
        self._note = cfg.order_note

    async def create_payment_session(self, req: CreatePaymentSession) -> PaymentSession:
        order_meta: dict[str, str] = {}
        if req.return_url:
            order_meta["return_url"] = req.return_url
        if req.notify_url:
            order_meta["notify_url"] = req.notify_url
        body = {
            "order_id": req.order_id,
            "order_amount": float(req.amount),
            "order_currency": req.currency,
            "customer_details": req.customer.model_dump(),
            "order_note": req.note or self._note,
        }
        if order_meta:
            body["order_meta"] = order_meta

        self._log("payment_session_request", order_id=req.order_id, amount=str(req.amount))
        data = await self._request("POST", "/orders", json=body)
        session_id = data.get("payment_session_id") if isinstance(data, dict) else None
        if not session_id:
            raise PaymentProviderError(
                "Payment session id missing from gateway response",
                provider=self.provider,
                details={"response": data},
            )
        return PaymentSession(
            order_id=req.order_id,
            payment_session_id=str(session_id),
            provider=self.provider,
            provider_order_id=str(data.get("cf_order_id") or "") or None,
            raw=data,
        )

    async def fetch_order(self, order_id: str) -> RemoteOrder:
        data = await self._request("GET", f"/orders/{order_id}")
        if not isinstance(data, dict):
            raise PaymentProviderError("Unexpected order payload", provider=self.provider, details={"response": data})
        return RemoteOrder(
            order_id=str(data.get("order_id") or order_id),
            status=str(data.get("order_status") or "UNKNOWN"),
            amount=_amount(data.get("order_amount")),
            provider=self.provider,
            raw=data,
        )

    async def fetch_payments(self, order_id: str) -> list[RemotePayment]:
        data = await self._request("GET", f"/orders/{order_id}/payments")
        if not isinstance(data, list):
            raise PaymentProviderError("Unexpected payments payload", provider=self.provider, details={"response": data})
        return [
            RemotePayment(
                payment_id=str(item.get("cf_payment_id")),
                status=str(item.get("payment_status") or "UNKNOWN"),
                amount=_amount(item.get("payment_amount")),
                provider=self.provider,
                raw=item,
            )
            for item in data
            if isinstance(item, dict) and item.get("cf_payment_id") is not None
        ]
