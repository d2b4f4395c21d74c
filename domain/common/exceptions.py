"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key,
            format_params=format_params,
        )


class AmountMismatchException(BusinessException):
    def __init__(self, quoted: Decimal, computed: Decimal):
        super().__init__(
            code=BusinessCode.ORDER_AMOUNT_MISMATCH,
            message="Amount does not match cart total",
            error_type="AmountMismatch",
            details={"amount": str(quoted), "cart_total": str(computed)},
            field="amount",
            message_key="Amount {amount} does not match cart total {cart_total}",
        )


class InvalidStatusTransitionException(BusinessException):
    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.ORDER_INVALID_TRANSITION,
            message=f"Cannot move order from {current} to {target}",
            error_type="InvalidStatusTransition",
            details={"order_id": order_id, "current": current, "target": target},
            field="status",
        )


class OrderStoreUnavailableException(BusinessException):
    """订单存储暂时不可用（可重试）"""

    def __init__(self, operation: str, reason: Optional[str] = None):
        super().__init__(
            code=BusinessCode.DATABASE_ERROR,
            message="Order store unavailable",
            error_type="OrderStoreUnavailable",
            details={"operation": operation, "reason": reason},
            message_key="Order store unavailable, please retry",
        )
