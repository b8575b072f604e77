"""
支付尝试仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.money import Amount
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付尝试仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            order_id=model.order_id,
            merchant_reference=model.merchant_reference,
            amount=Amount(value=model.amount_value, currency=model.currency),
            payment_method_type=model.payment_method_type,
            status=PaymentStatus.from_result_code(model.status, PaymentStatus.PENDING_WEBHOOK),
            psp_reference=model.psp_reference,
            result_code=model.result_code,
            action=model.action,
            refusal_reason=model.refusal_reason,
            shopper_reference=model.shopper_reference,
            client_return_url=model.client_return_url,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            order_id=entity.order_id,
            merchant_reference=entity.merchant_reference,
            psp_reference=entity.psp_reference,
            amount_value=entity.amount.value,
            currency=entity.amount.currency,
            payment_method_type=entity.payment_method_type,
            status=entity.status.value,
            result_code=entity.result_code,
            action=entity.action,
            refusal_reason=entity.refusal_reason,
            shopper_reference=entity.shopper_reference,
            client_return_url=entity.client_return_url,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付尝试记录"""
        now = datetime.now(timezone.utc)
        payment.created_at = now
        payment.updated_at = now
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_persisted",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据内部ID获取支付尝试"""
        query = select(PaymentModel).where(PaymentModel.id == payment_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_psp_reference(self, psp_reference: str) -> Optional[Payment]:
        """根据网关支付引用获取支付尝试"""
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.psp_reference == psp_reference)
            .with_for_update()
        )
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_psp_or_merchant_reference(
        self,
        psp_reference: Optional[str],
        merchant_reference: Optional[str],
    ) -> Optional[Payment]:
        """按网关引用或商户引用查找（网关引用优先）"""
        conditions = []
        if psp_reference:
            conditions.append(PaymentModel.psp_reference == psp_reference)
        if merchant_reference:
            conditions.append(PaymentModel.merchant_reference == merchant_reference)
        if not conditions:
            return None
        result = await self.session.execute(
            select(PaymentModel).where(or_(*conditions)).with_for_update()
        )
        candidates = result.scalars().all()
        if not candidates:
            return None
        for model in candidates:
            if psp_reference and model.psp_reference == psp_reference:
                return self._to_entity(model)
        return self._to_entity(candidates[0])

    async def list_by_order(
        self,
        order_id: str,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        """获取订单下的支付尝试"""
        query = select(PaymentModel).where(PaymentModel.order_id == order_id)
        if status:
            query = query.where(PaymentModel.status == status.value)
        query = query.order_by(PaymentModel.created_at.asc())
        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, payment: Payment) -> Payment:
        """更新支付尝试记录"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise ValueError(f"Payment with id {payment.id} not found")

        db_payment.psp_reference = payment.psp_reference
        db_payment.status = payment.status.value
        db_payment.result_code = payment.result_code
        db_payment.action = payment.action
        db_payment.refusal_reason = payment.refusal_reason
        db_payment.updated_at = datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            status=db_payment.status,
        )

        return self._to_entity(db_payment)
