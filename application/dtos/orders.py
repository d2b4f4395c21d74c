"""
Order DTOs exchanged with the storefront (camelCase on the wire).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.types import condecimal


class CamelDTO(BaseModel):
    """Base DTO: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CartItemDTO(CamelDTO):
    id: str = Field(..., min_length=1, max_length=128)
    price: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    quantity: int = Field(..., gt=0, le=1000)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        # catalog ids may arrive as numbers
        return str(v) if isinstance(v, int) else v


class UserDTO(CamelDTO):
    uid: str = Field(..., min_length=1, max_length=128)
    email: Optional[str] = Field(default=None, max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)


class CreateOrderRequest(CamelDTO):
    cart: list[CartItemDTO] = Field(..., min_length=1)
    user: UserDTO
    amount: Optional[condecimal(gt=0, decimal_places=2)] = None  # type: ignore[valid-type]

    @field_validator("cart")
    @classmethod
    def _unique_item_ids(cls, v: list[CartItemDTO]) -> list[CartItemDTO]:
        seen = set()
        for item in v:
            if item.id in seen:
                raise ValueError(f"duplicate cart item id: {item.id}")
            seen.add(item.id)
        return v


class CreateOrderResponse(CamelDTO):
    order_id: str
    payment_session_token: str
    amount: Decimal
    currency: str
    env_mode: str


class VerifyOrderRequest(CamelDTO):
    order_id: str = Field(..., min_length=1, max_length=64)


class OrderStatusDTO(CamelDTO):
    order_id: str
    status: str
    # "store" when answered from the local record, "gateway" when derived remotely
    source: str
    # SUCCESS / FAILURE / OTHER, present when the gateway was consulted
    bucket: Optional[str] = None


class OrderProbeDTO(CamelDTO):
    order_id: str
    exists: bool
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    item_count: int = 0
