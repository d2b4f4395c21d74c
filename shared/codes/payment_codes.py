"""
Payment specific codes and gateway status classification.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Gateway status tokens grouped by outcome. Anything else (ACTIVE, PENDING,
# NOT_ATTEMPTED, FLAGGED, AUTHORIZED ...) is treated as non-final.
SUCCESS_STATUSES = frozenset({"SUCCESS", "PAID", "CAPTURED", "COMPLETED"})
FAILURE_STATUSES = frozenset({
    "FAILED",
    "FAILURE",
    "CANCELLED",
    "CANCELED",
    "DECLINED",
    "EXPIRED",
    "TERMINATED",
    "USER_DROPPED",
    "VOID",
})
