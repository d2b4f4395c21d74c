"""
Reconciliation engine: drives an order from PENDING to PREPARING or FAILED
from normalized gateway events.

Deliveries are at-least-once, may arrive out of order, and may run
concurrently for the same order. There is no in-process locking; every
step is an individually idempotent store operation (insert-if-absent or
compare-and-set on status), and each step runs in its own unit of work, so
a delivery interrupted half-way is repaired by the next one.

Webhook, verify-order polling and the periodic sweep all enter through
`reconcile`; there is no second state machine.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from application.services.event_normalizer import NormalizedEvent, StatusBucket
from core.logging_config import get_logger
from domain.common.exceptions import OrderStoreUnavailableException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus, PaymentRecord, PendingSnapshot
from domain.order.events import (
    OrderEvent,
    OrderFailed,
    OrderFlagged,
    OrderItemsRepaired,
    OrderPaid,
)
from domain.order.pricing import amounts_match


logger = get_logger(__name__)

MISSING_SNAPSHOT_REASON = "missing_cart_snapshot"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"        # state changed
    DUPLICATE = "duplicate"    # already handled earlier
    IGNORED = "ignored"        # nothing to do for this event
    REJECTED = "rejected"      # never processed (signature, malformed payload)
    RETRY = "retry"            # transient; the caller should redeliver


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    order_id: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None

    @property
    def should_retry(self) -> bool:
        return self.outcome is ReconcileOutcome.RETRY

    def as_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "outcome": self.outcome.value,
            "status": self.status,
            "reason": self.reason,
        }


class ReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._now = clock or (lambda: datetime.now(timezone.utc))
        self.events: list[OrderEvent] = []

    async def reconcile(self, event: NormalizedEvent, source: str = "webhook") -> ReconcileResult:
        log = logger.bind(
            order_id=event.order_id,
            payment_id=event.payment_id,
            gateway_status=event.status,
            source=source,
        )
        try:
            if event.bucket is StatusBucket.SUCCESS:
                result = await self._apply_success(event, source)
            elif event.bucket is StatusBucket.FAILURE:
                result = await self._apply_failure(event, source)
            else:
                result = ReconcileResult(ReconcileOutcome.IGNORED, event.order_id, reason="non_final_status")
        except OrderStoreUnavailableException as exc:
            log.error("reconcile_store_unavailable", error=str(exc), details=exc.details)
            return ReconcileResult(ReconcileOutcome.RETRY, event.order_id, reason="store_unavailable")

        self._publish_events()
        if result.should_retry:
            log.warning("reconcile_retry", reason=result.reason)
        else:
            log.info("reconcile_done", outcome=result.outcome.value, status=result.status, reason=result.reason)
        return result

    # SUCCESS -----------------------------------------------------------

    async def _apply_success(self, event: NormalizedEvent, source: str) -> ReconcileResult:
        order_id = event.order_id
        payment_id = event.ledger_key

        # 1. ledger gate
        async with self._uow_factory() as uow:
            first_seen = await uow.payments.add_if_absent(PaymentRecord(
                payment_id=payment_id,
                order_id=order_id,
                amount=event.amount,
                status=event.status,
                raw_payload=event.raw,
                created_at=self._now(),
            ))

        # 2. order gate
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get(order_id)
            item_count = await uow.order_items.count(order_id) if order else 0

        if order is not None and order.status is OrderStatus.NEEDS_RECONCILIATION:
            await self._attach_payment_id(order, event.payment_id)
            return ReconcileResult(ReconcileOutcome.IGNORED, order_id, order.status.value, "awaiting_manual_reconciliation")

        if order is not None and order.status is OrderStatus.PREPARING:
            attached = await self._attach_payment_id(order, event.payment_id)
            if item_count > 0:
                # items are written in one unit of work, so the snapshot is spent
                async with self._uow_factory() as uow:
                    if await uow.snapshots.delete(order_id):
                        logger.info("pending_snapshot_consumed_late", order_id=order_id)
                if attached:
                    return ReconcileResult(ReconcileOutcome.APPLIED, order_id, order.status.value, "payment_id_recorded")
                reason = "payment_already_recorded" if not first_seen else "order_already_paid"
                return ReconcileResult(ReconcileOutcome.DUPLICATE, order_id, order.status.value, reason)
            # 3. paid but no items: an earlier delivery stopped half-way
            return await self._repair_items(order, source)

        if order is not None and order.status is OrderStatus.FAILED:
            # terminal; the ledger row keeps the payment visible for a refund
            logger.error("payment_after_terminal_failure", order_id=order_id, payment_id=payment_id)
            return ReconcileResult(ReconcileOutcome.IGNORED, order_id, order.status.value, "order_already_failed")

        # 4. order is PENDING or its header is missing
        return await self._materialize(event, order, source)

    async def _attach_payment_id(self, order: Order, payment_id: Optional[str]) -> bool:
        """Record the gateway payment id on a paid order that was settled without one."""
        if not payment_id:
            return False
        if order.payment_id:
            if order.payment_id != payment_id:
                logger.warning(
                    "second_payment_for_paid_order",
                    order_id=order.id,
                    recorded_payment_id=order.payment_id,
                    payment_id=payment_id,
                )
            return False
        async with self._uow_factory() as uow:
            attached = await uow.orders.attach_payment_id(order.id, payment_id)
        if attached:
            order.payment_id = payment_id
            logger.info("order_payment_id_recorded", order_id=order.id, payment_id=payment_id)
        return attached

    async def _materialize(self, event: NormalizedEvent, order: Optional[Order], source: str) -> ReconcileResult:
        order_id = event.order_id
        # the ledger key stays in the ledger; orders only carry gateway ids
        payment_id = event.payment_id

        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.snapshots.get(order_id)
        if snapshot is None:
            # snapshot write may not be visible yet; let the gateway redeliver
            logger.warning("pending_snapshot_missing", order_id=order_id, order_exists=order is not None)
            return ReconcileResult(ReconcileOutcome.RETRY, order_id, order.status.value if order else None, "snapshot_missing")

        quoted = order.total_amount if order is not None else snapshot.amount
        if event.amount is not None and not amounts_match(event.amount, quoted):
            return await self._flag_pending(
                order,
                snapshot,
                payment_id,
                reason=f"amount_mismatch: paid {event.amount} quoted {quoted}",
                source=source,
            )

        paid_at = self._now()
        async with self._uow_factory() as uow:
            if order is None:
                header = self._header_from_snapshot(snapshot)
                header.mark_preparing(payment_id, paid_at)
                moved = await uow.orders.add_if_absent(header)
            else:
                header = replace(order)
                header.mark_preparing(payment_id, paid_at)
                moved = await uow.orders.update_status_if(order_id, OrderStatus.PENDING, header)
            current = header if moved else await uow.orders.get(order_id)

        if current is None or current.status is not OrderStatus.PREPARING:
            # a concurrent delivery settled the order differently
            status = current.status.value if current else None
            return ReconcileResult(ReconcileOutcome.IGNORED, order_id, status, "concurrent_transition")

        inserted = await self._write_items(snapshot)
        if moved:
            self.events.append(OrderPaid(order_id=order_id, source=source, payment_id=payment_id, item_count=len(snapshot.cart)))
            return ReconcileResult(ReconcileOutcome.APPLIED, order_id, OrderStatus.PREPARING.value, "materialized")
        outcome = ReconcileOutcome.APPLIED if inserted else ReconcileOutcome.DUPLICATE
        return ReconcileResult(outcome, order_id, OrderStatus.PREPARING.value, "concurrent_delivery")

    async def _repair_items(self, order: Order, source: str) -> ReconcileResult:
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.snapshots.get(order.id)
            item_count = await uow.order_items.count(order.id)

        if snapshot is not None:
            inserted = await self._write_items(snapshot)
            self.events.append(OrderItemsRepaired(order_id=order.id, source=source, item_count=inserted))
            return ReconcileResult(ReconcileOutcome.APPLIED, order.id, order.status.value, "items_repaired")

        if item_count > 0:
            # a concurrent delivery finished between our reads
            return ReconcileResult(ReconcileOutcome.DUPLICATE, order.id, order.status.value, "order_already_paid")

        # snapshot is deleted only after items commit, so this is data loss
        flagged = replace(order)
        flagged.flag_for_reconciliation(MISSING_SNAPSHOT_REASON)
        async with self._uow_factory() as uow:
            moved = await uow.orders.update_status_if(order.id, OrderStatus.PREPARING, flagged)
        if moved:
            self.events.append(OrderFlagged(order_id=order.id, source=source, reason=MISSING_SNAPSHOT_REASON))
        return ReconcileResult(ReconcileOutcome.APPLIED, order.id, OrderStatus.NEEDS_RECONCILIATION.value, MISSING_SNAPSHOT_REASON)

    async def _flag_pending(
        self,
        order: Optional[Order],
        snapshot: PendingSnapshot,
        payment_id: Optional[str],
        *,
        reason: str,
        source: str,
    ) -> ReconcileResult:
        flagged = replace(order) if order is not None else self._header_from_snapshot(snapshot)
        flagged.flag_for_reconciliation(reason, payment_id=payment_id)
        async with self._uow_factory() as uow:
            if order is None:
                moved = await uow.orders.add_if_absent(flagged)
            else:
                moved = await uow.orders.update_status_if(order.id, OrderStatus.PENDING, flagged)
        if moved:
            self.events.append(OrderFlagged(order_id=flagged.id, source=source, reason=reason))
            return ReconcileResult(ReconcileOutcome.APPLIED, flagged.id, flagged.status.value, reason)
        return ReconcileResult(ReconcileOutcome.IGNORED, flagged.id, None, "concurrent_transition")

    async def _write_items(self, snapshot: PendingSnapshot) -> int:
        async with self._uow_factory() as uow:
            inserted = await uow.order_items.add_many_if_absent(snapshot.line_items())
        # consumed only once the items are durable
        async with self._uow_factory() as uow:
            await uow.snapshots.delete(snapshot.order_id)
        return inserted

    @staticmethod
    def _header_from_snapshot(snapshot: PendingSnapshot) -> Order:
        return Order(
            id=snapshot.order_id,
            user_id=snapshot.user_id,
            user_email=snapshot.user_email,
            status=OrderStatus.PENDING,
            total_amount=snapshot.amount,
            currency=snapshot.currency,
            created_at=snapshot.created_at,
        )

    # FAILURE -----------------------------------------------------------

    async def _apply_failure(self, event: NormalizedEvent, source: str) -> ReconcileResult:
        order_id = event.order_id
        async with self._uow_factory() as uow:
            order = await uow.orders.get(order_id)
            if order is None:
                logger.warning("failure_for_unknown_order", order_id=order_id)
                return ReconcileResult(ReconcileOutcome.IGNORED, order_id, None, "unknown_order")
            if order.status is not OrderStatus.PENDING:
                # success is sticky; terminal states never move back
                return ReconcileResult(ReconcileOutcome.IGNORED, order_id, order.status.value, "order_not_pending")
            target = replace(order)
            target.mark_failed(reason=event.status)
            moved = await uow.orders.update_status_if(order_id, OrderStatus.PENDING, target)

        if not moved:
            return ReconcileResult(ReconcileOutcome.IGNORED, order_id, None, "concurrent_transition")
        self.events.append(OrderFailed(order_id=order_id, source=source, reason=event.status))
        return ReconcileResult(ReconcileOutcome.APPLIED, order_id, OrderStatus.FAILED.value, "payment_failed")

    def _publish_events(self) -> None:
        events, self.events = self.events, []
        for evt in events:
            fields = {k: v for k, v in vars(evt).items() if k != "occurred_at"}
            logger.info("order_domain_event", event_name=evt.name, **fields)
