"""
Webhook intake: authenticate the raw delivery, parse it, and hand the
normalized event to the reconciliation engine.

Rejections (bad signature, stale timestamp, malformed or unmappable body)
are acknowledged, never retried: redelivering the same bytes cannot succeed.
"""
from __future__ import annotations

import json
from typing import Mapping, Optional

from application.services.event_normalizer import NormalizationError, normalize
from application.services.reconciliation_service import (
    ReconcileOutcome,
    ReconcileResult,
    ReconciliationService,
)
from application.utils.signature import is_fresh_timestamp, verify_signature
from core.logging_config import get_logger


logger = get_logger(__name__)

TIMESTAMP_HEADER = "x-webhook-timestamp"
SIGNATURE_HEADER = "x-webhook-signature"


def _rejected(reason: str) -> ReconcileResult:
    return ReconcileResult(ReconcileOutcome.REJECTED, reason=reason)


class WebhookService:
    def __init__(
        self,
        reconciler: ReconciliationService,
        *,
        secret: Optional[str],
        tolerance_seconds: int = 0,
    ) -> None:
        self._reconciler = reconciler
        self._secret = secret
        self._tolerance = tolerance_seconds

    async def handle(self, headers: Mapping[str, str], body: bytes) -> ReconcileResult:
        lowered = {k.lower(): v for k, v in headers.items()}
        timestamp = lowered.get(TIMESTAMP_HEADER)
        signature = lowered.get(SIGNATURE_HEADER)

        if not verify_signature(body, timestamp, signature, self._secret):
            logger.warning(
                "webhook_signature_invalid",
                has_timestamp=bool(timestamp),
                has_signature=bool(signature),
                secret_configured=bool(self._secret),
                body_bytes=len(body or b""),
            )
            return _rejected("invalid_signature")

        if not is_fresh_timestamp(timestamp, self._tolerance):
            logger.warning("webhook_timestamp_stale", timestamp=timestamp, tolerance_seconds=self._tolerance)
            return _rejected("stale_timestamp")

        try:
            payload = json.loads(body)
        except ValueError as exc:
            logger.warning("webhook_body_malformed", error=str(exc))
            return _rejected("malformed_json")

        try:
            event = normalize(payload)
        except NormalizationError as exc:
            logger.warning("webhook_payload_unmapped", error=str(exc), event_type=_event_type(payload))
            return _rejected("unmappable_payload")

        logger.info(
            "webhook_received",
            order_id=event.order_id,
            payment_id=event.payment_id,
            gateway_status=event.status,
            bucket=event.bucket.value,
            event_type=event.event_type,
        )
        return await self._reconciler.reconcile(event, source="webhook")


def _event_type(payload) -> Optional[str]:
    return payload.get("type") if isinstance(payload, dict) else None
