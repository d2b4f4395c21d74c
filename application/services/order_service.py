"""
订单应用服务 - 下单、主动查单、过期对账、状态探测

依赖 PaymentGateway 端口与 UnitOfWork 工厂，由组合根（API/任务）注入。
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.orders import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderProbeDTO,
    OrderStatusDTO,
)
from application.dtos.payments import CreatePaymentSession, CustomerDetails
from application.ports.payment_gateway import PaymentGateway
from application.services.event_normalizer import NormalizedEvent, StatusBucket, classify_status
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from core.settings import OrderPolicy
from domain.common.exceptions import (
    AmountMismatchException,
    BusinessException,
    DomainValidationException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import CartLine, Order, OrderStatus, PendingSnapshot, to_money
from domain.order.pricing import amounts_match, quote_cart


logger = get_logger(__name__)


def generate_order_id() -> str:
    """order_<毫秒时间戳>_<随机后缀>，时间戳保证大致有序，后缀避免同毫秒冲突"""
    return f"order_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


@dataclass
class SweepReport:
    scanned: int = 0
    settled: int = 0
    still_pending: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "settled": self.settled,
            "still_pending": self.still_pending,
            "errors": len(self.errors),
        }


class OrderApplicationService:
    """订单应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        reconciler: ReconciliationService,
        *,
        policy: OrderPolicy,
        public_base_url: str,
        api_prefix: str = "/api",
        order_note: Optional[str] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway = gateway
        self._reconciler = reconciler
        self._policy = policy
        self._base_url = public_base_url.rstrip("/")
        self._api_prefix = api_prefix
        self._order_note = order_note

    @property
    def notify_url(self) -> str:
        return f"{self._base_url}{self._api_prefix}/webhook"

    def return_url(self, order_id: str) -> str:
        return f"{self._base_url}/pg/return?order_id={order_id}"

    async def create_order(self, req: CreateOrderRequest) -> CreateOrderResponse:
        """校验购物车、服务端计价、持久化待支付快照，再向网关申请支付会话"""
        cart = [
            CartLine(item_id=item.id, unit_price=to_money(item.price), quantity=item.quantity)
            for item in req.cart
        ]
        amount = quote_cart(cart, self._policy.discount_percent)
        if req.amount is not None and not amounts_match(req.amount, amount):
            logger.warning("order_amount_mismatch", client_amount=str(req.amount), cart_total=str(amount))
            raise AmountMismatchException(req.amount, amount)
        if amount > self._policy.max_amount:
            raise DomainValidationException(
                "Order amount exceeds the allowed maximum",
                field="amount",
                details={"amount": str(amount), "max_amount": str(self._policy.max_amount)},
            )

        order_id = generate_order_id()
        now = datetime.now(timezone.utc)
        order = Order(
            id=order_id,
            user_id=req.user.uid,
            user_email=req.user.email,
            status=OrderStatus.PENDING,
            total_amount=amount,
            currency=self._policy.currency,
            created_at=now,
            updated_at=now,
        )
        snapshot = PendingSnapshot(
            order_id=order_id,
            user_id=req.user.uid,
            user_email=req.user.email,
            cart=cart,
            amount=amount,
            currency=self._policy.currency,
            discount_percent=self._policy.discount_percent,
            created_at=now,
        )
        # 快照必须先于网关调用落库：回调可能比响应更早到达
        async with self._uow_factory() as uow:
            await uow.orders.add(order)
            await uow.snapshots.add(snapshot)
        logger.info("order_created", order_id=order_id, amount=str(amount), items=len(cart), user_id=req.user.uid)

        session = await self._gateway.create_payment_session(CreatePaymentSession(
            order_id=order_id,
            amount=amount,
            currency=self._policy.currency,
            customer=CustomerDetails(
                customer_id=req.user.uid,
                customer_name=req.user.display_name or "Guest",
                customer_email=req.user.email or "noemail@example.com",
                customer_phone=req.user.phone_number or "9999999999",
            ),
            notify_url=self.notify_url,
            return_url=self.return_url(order_id),
            note=self._order_note,
        ))
        logger.info("payment_session_created", order_id=order_id, provider=session.provider)

        return CreateOrderResponse(
            order_id=order_id,
            payment_session_token=session.payment_session_id,
            amount=amount,
            currency=self._policy.currency,
            env_mode=self._gateway.env_mode,
        )

    async def verify_order(self, order_id: str) -> OrderStatusDTO:
        """主动查单：本地已终态直接返回，否则查询网关并走同一套对账流程"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get(order_id)
        if order is not None and order.is_terminal:
            return OrderStatusDTO(order_id=order_id, status=order.status.value, source="store")

        remote = await self._gateway.fetch_order(order_id)
        bucket = classify_status(remote.status)
        logger.info("order_remote_status", order_id=order_id, remote_status=remote.status, bucket=bucket.value)

        if bucket is not StatusBucket.OTHER:
            payment_id, amount = None, remote.amount
            if bucket is StatusBucket.SUCCESS:
                payments = await self._gateway.fetch_payments(order_id)
                paid = next((p for p in payments if classify_status(p.status) is StatusBucket.SUCCESS), None)
                if paid is not None:
                    payment_id = paid.payment_id
                    amount = paid.amount if paid.amount is not None else remote.amount
            event = NormalizedEvent(
                order_id=order_id,
                payment_id=payment_id,
                status=remote.status.upper(),
                bucket=bucket,
                amount=amount,
                event_type="ORDER_STATUS_POLL",
                raw=remote.raw,
            )
            await self._reconciler.reconcile(event, source="poll")

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get(order_id)
        if order is not None:
            return OrderStatusDTO(order_id=order_id, status=order.status.value, source="store", bucket=bucket.value)
        return OrderStatusDTO(order_id=order_id, status=remote.status.upper(), source="gateway", bucket=bucket.value)

    async def reconcile_stale(self, now: Optional[datetime] = None) -> SweepReport:
        """对超时仍为 PENDING 的订单逐一主动查单"""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=self._policy.stale_after_seconds)
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.orders.list_by_status(
                OrderStatus.PENDING,
                created_before=cutoff,
                limit=self._policy.sweep_batch_size,
            )

        report = SweepReport(scanned=len(stale))
        for order in stale:
            try:
                result = await self.verify_order(order.id)
            except BusinessException as exc:
                # 单笔失败不影响其余订单，下一轮继续
                logger.warning("sweep_verify_failed", order_id=order.id, code=exc.code, error=exc.message)
                report.errors.append(order.id)
                continue
            if result.status == OrderStatus.PENDING.value:
                report.still_pending += 1
            else:
                report.settled += 1
        logger.info("sweep_stale_orders_done", **report.as_dict())
        return report


class OrderStoreService:
    """不依赖支付网关的订单存储操作：状态探测、快照清理"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def probe_order(self, order_id: str) -> OrderProbeDTO:
        """轻量状态探测"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get(order_id)
            item_count = await uow.order_items.count(order_id) if order else 0
        if order is None:
            return OrderProbeDTO(order_id=order_id, exists=False)
        return OrderProbeDTO(
            order_id=order_id,
            exists=True,
            status=order.status.value,
            amount=order.total_amount,
            currency=order.currency,
            item_count=item_count,
        )

    async def purge_snapshots(self, retention_seconds: int, limit: int = 100, now: Optional[datetime] = None) -> int:
        """清理已失败订单的过期快照"""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=retention_seconds)
        async with self._uow_factory(readonly=True) as uow:
            order_ids = await uow.snapshots.list_orphaned(cutoff, limit=limit)
        purged = 0
        for order_id in order_ids:
            async with self._uow_factory() as uow:
                if await uow.snapshots.delete(order_id):
                    purged += 1
        logger.info("sweep_snapshots_purged", purged=purged, candidates=len(order_ids))
        return purged
