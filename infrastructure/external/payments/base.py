"""
Base payment client implementing shared concerns: http, retry, logging, error mapping.

Concrete providers subclass and implement the gateway protocol on top of
`_request`, which returns decoded JSON or raises a payment exception.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.ports.payment_gateway import PaymentGateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import PaymentCode


logger = get_logger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})
# Safe to resend any method: the request never reached the gateway
UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)
RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.TransportError)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"
    env_mode: str = "sandbox"

    def __init__(
        self,
        *,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            pool=self._timeouts_cfg["total"],
        )

    @property
    def client(self) -> httpx.AsyncClient:
        # Lazily created and reused; explicit aclose() releases it
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self.timeouts,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        retry_on = RETRYABLE_ERRORS if method.upper() in IDEMPOTENT_METHODS else UNSENT_ERRORS
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(retry_on),
            reraise=True,
        ):
            with attempt:
                return await self.client.request(method, path, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._send(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            self._log("payment_gateway_timeout", method=method, path=path)
            raise PaymentRecoverableError(
                "Payment gateway timed out", provider=self.provider, code=PaymentCode.TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            self._log("payment_gateway_unreachable", method=method, path=path, error=str(exc))
            raise PaymentRecoverableError("Payment gateway unreachable", provider=self.provider) from exc

        payload = self._decode(resp)
        if resp.status_code == 429 or resp.status_code >= 500:
            self._log("payment_gateway_unavailable", method=method, path=path, status_code=resp.status_code)
            raise PaymentRecoverableError(
                self._error_message(payload, resp),
                provider=self.provider,
                provider_code=self._error_code(payload),
                details={"status_code": resp.status_code, "response": payload},
                code=PaymentCode.RATE_LIMITED if resp.status_code == 429 else PaymentCode.PROVIDER_RECOVERABLE,
            )
        if resp.status_code >= 400:
            self._log("payment_gateway_rejected", method=method, path=path, status_code=resp.status_code)
            raise PaymentProviderError(
                self._error_message(payload, resp),
                provider=self.provider,
                provider_code=self._error_code(payload),
                details={"status_code": resp.status_code, "response": payload},
            )
        return payload

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {"body": resp.text[:512]}

    @staticmethod
    def _error_message(payload: Any, resp: httpx.Response) -> str:
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return f"Payment gateway returned HTTP {resp.status_code}"

    @staticmethod
    def _error_code(payload: Any) -> Optional[str]:
        if isinstance(payload, dict):
            code = payload.get("code") or payload.get("type")
            return str(code) if code else None
        return None

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
