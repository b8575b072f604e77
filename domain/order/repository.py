"""
订单仓储接口 - 定义订单数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单记录（写入 created_at/updated_at）"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str, *, for_update: bool = False) -> Optional[Order]:
        """根据内部ID获取订单"""
        pass

    @abstractmethod
    async def get_by_gateway_reference(self, gateway_order_reference: str) -> Optional[Order]:
        """根据网关订单引用获取订单"""
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """更新订单记录（刷新 updated_at）"""
        pass
