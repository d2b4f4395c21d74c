"""
Order domain events.

Collected by the reconciliation service and emitted as structured logs;
the domain stays free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: str
    source: str = "webhook"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass
class OrderPaid(OrderEvent):
    payment_id: Optional[str] = None
    item_count: int = 0


@dataclass
class OrderItemsRepaired(OrderEvent):
    item_count: int = 0


@dataclass
class OrderFailed(OrderEvent):
    reason: Optional[str] = None


@dataclass
class OrderFlagged(OrderEvent):
    reason: str = ""
