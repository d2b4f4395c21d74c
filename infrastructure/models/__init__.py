"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, PendingSnapshotModel, OrderItemModel, PaymentLedgerModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PendingSnapshotModel",
    "OrderItemModel",
    "PaymentLedgerModel",
]
