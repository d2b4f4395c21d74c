"""
Payment and order settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials and order
policy can be loaded (and overridden in tests) independently.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field

CASHFREE_SANDBOX_URL = "https://sandbox.cashfree.com/pg"
CASHFREE_PRODUCTION_URL = "https://api.cashfree.com/pg"


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 5.0
    write: float = 5.0
    total: float = 10.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    # 0 disables the replay window check
    tolerance_seconds: int = 0
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class CashfreeSettings(BaseModel):
    env: Literal["sandbox", "production"] = "sandbox"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    # Cashfree signs webhooks with the client secret unless a dedicated one is issued
    webhook_secret: Optional[str] = None
    api_version: str = "2023-08-01"
    order_note: str = "Storefront order"

    @property
    def base_url(self) -> str:
        return CASHFREE_PRODUCTION_URL if self.env == "production" else CASHFREE_SANDBOX_URL

    @property
    def signing_secret(self) -> Optional[str]:
        return self.webhook_secret or self.client_secret


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="cashfree", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    cashfree: CashfreeSettings = Field(default_factory=CashfreeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


class OrderPolicy(BaseModel):
    currency: str = "INR"
    # Published discount applied to every unit price at quote time
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, lt=100)
    max_amount: Decimal = Field(default=Decimal("500000"), gt=0)
    # Reconciliation sweep
    stale_after_seconds: int = 15 * 60
    sweep_batch_size: int = 100
    sweep_interval_seconds: int = 10 * 60
    snapshot_retention_seconds: int = 7 * 24 * 3600


class OrderSettings(BaseSettings):
    orders: OrderPolicy = Field(default_factory=OrderPolicy)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
order_settings = OrderSettings().orders
