"""
支付尝试仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付尝试仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付尝试记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据内部ID获取支付尝试"""
        pass

    @abstractmethod
    async def get_by_psp_reference(self, psp_reference: str) -> Optional[Payment]:
        """根据网关支付引用获取支付尝试"""
        pass

    @abstractmethod
    async def get_by_psp_or_merchant_reference(
        self,
        psp_reference: Optional[str],
        merchant_reference: Optional[str],
    ) -> Optional[Payment]:
        """按网关引用或商户引用查找（任一匹配即可）"""
        pass

    @abstractmethod
    async def list_by_order(
        self,
        order_id: str,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        """获取订单下的支付尝试"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付尝试记录"""
        pass
