"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    CreatePaymentSession,
    PaymentSession,
    RemoteOrder,
    RemotePayment,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the hosted-checkout payment provider.

    Implementations are async, bound their own timeouts, and raise
    PaymentProviderError / PaymentRecoverableError on remote failures.
    """

    provider: str
    env_mode: str

    async def create_payment_session(self, req: CreatePaymentSession) -> PaymentSession: ...

    async def fetch_order(self, order_id: str) -> RemoteOrder: ...

    async def fetch_payments(self, order_id: str) -> list[RemotePayment]: ...

    async def aclose(self) -> None: ...
