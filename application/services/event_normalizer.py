"""
Normalize gateway notifications into one canonical event.

Payload shapes differ across API versions and event types. Each known shape
has a pure mapper returning a partial event (or None when the shape does not
apply); mappers are tried in a fixed priority order and, field by field, the
first populated value wins.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

from shared.codes.payment_codes import SUCCESS_STATUSES, FAILURE_STATUSES


class StatusBucket(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    OTHER = "OTHER"


class NormalizationError(ValueError):
    """Payload cannot be mapped to an order (missing order id, not an object)."""


@dataclass(frozen=True)
class NormalizedEvent:
    order_id: str
    payment_id: Optional[str]
    status: str
    bucket: StatusBucket
    amount: Optional[Decimal] = None
    event_type: Optional[str] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def ledger_key(self) -> str:
        """Ledger identity; falls back to the order when the gateway sent no payment id."""
        return self.payment_id or f"order:{self.order_id}"


@dataclass
class _Partial:
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[Decimal] = None


def classify_status(status: Optional[str]) -> StatusBucket:
    token = (status or "").strip().upper()
    if token in SUCCESS_STATUSES:
        return StatusBucket.SUCCESS
    if token in FAILURE_STATUSES:
        return StatusBucket.FAILURE
    return StatusBucket.OTHER


def _dig(payload: Any, *path: str) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    s = str(value).strip()
    return s or None


def _money(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _first(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def _payment_webhook(payload: dict) -> Optional[_Partial]:
    """2023-08-01 payment webhooks: {data: {order: {...}, payment: {...}}}."""
    payment = _dig(payload, "data", "payment")
    if not isinstance(payment, dict):
        return None
    return _Partial(
        order_id=_text(_dig(payload, "data", "order", "order_id")),
        payment_id=_text(payment.get("cf_payment_id")),
        status=_text(payment.get("payment_status")),
        amount=_first(_money(payment.get("payment_amount")), _money(_dig(payload, "data", "order", "order_amount"))),
    )


def _order_envelope(payload: dict) -> Optional[_Partial]:
    """Order-entity envelopes: {data: {order: {order_id, order_status, ...}}}."""
    order = _dig(payload, "data", "order")
    if not isinstance(order, dict):
        return None
    return _Partial(
        order_id=_text(order.get("order_id")),
        payment_id=_text(order.get("cf_payment_id")),
        status=_text(_first(_text(order.get("order_status")), _text(order.get("payment_status")))),
        amount=_money(order.get("order_amount")),
    )


def _flat_legacy(payload: dict) -> Optional[_Partial]:
    """Flat payloads from older API versions and the order entity itself."""
    return _Partial(
        order_id=_text(_first(_text(payload.get("order_id")), _text(payload.get("orderId")))),
        payment_id=_text(_first(
            _text(payload.get("cf_payment_id")),
            _text(payload.get("payment_id")),
            _text(payload.get("referenceId")),
        )),
        status=_text(_first(
            _text(payload.get("order_status")),
            _text(payload.get("payment_status")),
            _text(payload.get("txStatus")),
        )),
        amount=_first(_money(payload.get("order_amount")), _money(payload.get("orderAmount"))),
    )


SHAPES: tuple[Callable[[dict], Optional[_Partial]], ...] = (
    _payment_webhook,
    _order_envelope,
    _flat_legacy,
)


def normalize(payload: Any) -> NormalizedEvent:
    if not isinstance(payload, dict):
        raise NormalizationError("payload is not a JSON object")

    merged = _Partial()
    for shape in SHAPES:
        found = shape(payload)
        if found is None:
            continue
        merged.order_id = merged.order_id or found.order_id
        merged.payment_id = merged.payment_id or found.payment_id
        merged.status = merged.status or found.status
        if merged.amount is None:
            merged.amount = found.amount

    if not merged.order_id:
        raise NormalizationError("order id missing from payload")

    status = (merged.status or "UNKNOWN").upper()
    return NormalizedEvent(
        order_id=merged.order_id,
        payment_id=merged.payment_id,
        status=status,
        bucket=classify_status(status),
        amount=merged.amount,
        event_type=_text(payload.get("type")),
        raw=payload,
    )
