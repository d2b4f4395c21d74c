"""
Payment gateway DTOs (Pydantic v2) used at the application/gateway boundary.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.types import condecimal

# Currencies the gateway settles in (extend as needed)
ISO_4217 = {"INR", "USD", "EUR", "GBP", "SGD", "AED"}


class CustomerDetails(BaseModel):
    customer_id: str
    customer_name: str = "Guest"
    customer_email: str = "noemail@example.com"
    customer_phone: str = "9999999999"


class CreatePaymentSession(BaseModel):
    order_id: str
    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    customer: CustomerDetails
    notify_url: Optional[str] = None
    return_url: Optional[str] = None
    note: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        if u not in ISO_4217:
            raise ValueError("unsupported currency")
        return u


class PaymentSession(BaseModel):
    order_id: str
    payment_session_id: str
    provider: str
    provider_order_id: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class RemoteOrder(BaseModel):
    order_id: str
    status: str
    amount: Optional[Decimal] = None
    provider: str
    raw: dict[str, Any] = Field(default_factory=dict)


class RemotePayment(BaseModel):
    payment_id: str
    status: str
    amount: Optional[Decimal] = None
    provider: str
    raw: dict[str, Any] = Field(default_factory=dict)
