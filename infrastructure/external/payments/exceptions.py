"""
Gateway exceptions mapped onto BusinessException.

`PaymentRecoverableError` means the same call may succeed later (timeouts,
throttling, 5xx); the reconciliation sweep and webhook redelivery rely on
that distinction. `PaymentProviderError` is a definitive rejection.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentGatewayError(BusinessException):
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: PaymentCode,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=type(self).__name__,
            details={"provider": provider, "provider_code": provider_code, **(details or {})},
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentProviderError(PaymentGatewayError):
    def __init__(self, message: str, *, provider: str, provider_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(
            message,
            code=PaymentCode.PROVIDER_ERROR,
            provider=provider,
            provider_code=provider_code,
            details=details,
        )


class PaymentRecoverableError(PaymentGatewayError):
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
        code: PaymentCode = PaymentCode.PROVIDER_RECOVERABLE,
    ):
        super().__init__(
            message,
            code=code,
            provider=provider,
            provider_code=provider_code,
            details=details,
        )
