"""
订单仓储接口 - 定义订单、快照、明细、支付流水的数据访问抽象

并发安全依赖存储层自身的冲突检测：
- add_if_absent 系列方法必须是原子的“不存在才插入”
- update_status_if 必须是原子的“当前状态等于 expected 才更新”
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Order, OrderStatus, PendingSnapshot, OrderLineItem, PaymentRecord


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """根据订单ID获取订单"""
        pass

    @abstractmethod
    async def add(self, order: Order) -> Order:
        """新建订单（订单ID冲突时抛出异常）"""
        pass

    @abstractmethod
    async def add_if_absent(self, order: Order) -> bool:
        """订单不存在时插入，返回是否插入成功"""
        pass

    @abstractmethod
    async def update_status_if(
        self,
        order_id: str,
        expected: OrderStatus,
        order: Order,
    ) -> bool:
        """当前状态等于 expected 时，用 order 的状态/支付字段更新，返回是否更新成功"""
        pass

    @abstractmethod
    async def attach_payment_id(self, order_id: str, payment_id: str) -> bool:
        """订单尚无支付ID时补写网关支付ID，返回是否写入"""
        pass

    @abstractmethod
    async def list_by_status(
        self,
        status: OrderStatus,
        created_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        """按状态列出订单（按创建时间升序）"""
        pass


class PendingSnapshotRepository(ABC):
    """待支付快照仓储抽象接口"""

    @abstractmethod
    async def get(self, order_id: str) -> Optional[PendingSnapshot]:
        pass

    @abstractmethod
    async def add(self, snapshot: PendingSnapshot) -> None:
        pass

    @abstractmethod
    async def delete(self, order_id: str) -> bool:
        """删除快照，返回是否实际删除"""
        pass

    @abstractmethod
    async def list_orphaned(self, created_before: datetime, limit: int = 100) -> List[str]:
        """列出订单已失败且早于 created_before 的快照订单ID"""
        pass


class OrderItemRepository(ABC):
    """订单明细仓储抽象接口"""

    @abstractmethod
    async def count(self, order_id: str) -> int:
        pass

    @abstractmethod
    async def list(self, order_id: str) -> List[OrderLineItem]:
        pass

    @abstractmethod
    async def add_many_if_absent(self, items: List[OrderLineItem]) -> int:
        """按 (order_id, item_id) 幂等插入，返回新插入条数"""
        pass


class PaymentLedgerRepository(ABC):
    """支付流水仓储抽象接口"""

    @abstractmethod
    async def add_if_absent(self, record: PaymentRecord) -> bool:
        """按支付ID幂等插入，返回是否为首次记录"""
        pass

    @abstractmethod
    async def get(self, payment_id: str) -> Optional[PaymentRecord]:
        pass
