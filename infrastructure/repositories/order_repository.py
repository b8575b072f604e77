"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.money import Amount
from domain.order.entity import Order, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            gateway_order_reference=model.gateway_order_reference,
            merchant_reference=model.merchant_reference,
            status=OrderStatus(model.status),
            total_amount=Amount(value=model.total_amount_value, currency=model.currency),
            remaining_amount=Amount(value=model.remaining_amount_value, currency=model.currency),
            order_data_history=list(model.order_data_history or []),
            partial_payment_psp_references=list(model.partial_payment_psp_references or []),
            expires_at=model.expires_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            gateway_order_reference=entity.gateway_order_reference,
            merchant_reference=entity.merchant_reference,
            status=entity.status.value,
            currency=entity.currency,
            total_amount_value=entity.total_amount.value,
            remaining_amount_value=entity.remaining_amount.value,
            order_data_history=list(entity.order_data_history),
            partial_payment_psp_references=list(entity.partial_payment_psp_references),
            expires_at=entity.expires_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, order: Order) -> Order:
        """创建订单记录"""
        now = datetime.now(timezone.utc)
        order.created_at = now
        order.updated_at = now
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info(
            "order_persisted",
            order_id=db_order.id,
            gateway_order_reference=db_order.gateway_order_reference,
        )
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: str, *, for_update: bool = False) -> Optional[Order]:
        """根据内部ID获取订单"""
        query = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_gateway_reference(self, gateway_order_reference: str) -> Optional[Order]:
        """根据网关订单引用获取订单"""
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.gateway_order_reference == gateway_order_reference)
            .with_for_update()
        )
        db_order = result.scalars().first()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        """更新订单记录（仅可变字段）"""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.id == order.id)
        )
        db_order = result.scalar_one_or_none()

        if not db_order:
            raise ValueError(f"Order with id {order.id} not found")

        db_order.status = order.status.value
        db_order.remaining_amount_value = order.remaining_amount.value
        db_order.order_data_history = list(order.order_data_history)
        db_order.partial_payment_psp_references = list(order.partial_payment_psp_references)
        db_order.updated_at = datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.refresh(db_order)

        logger.info(
            "order_updated",
            order_id=db_order.id,
            status=db_order.status,
            remaining_amount=db_order.remaining_amount_value,
        )

        return self._to_entity(db_order)
