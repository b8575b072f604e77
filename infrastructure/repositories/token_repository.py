"""
Token 仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.token.entity import StoredToken
from domain.token.repository import TokenRepository, TokenAlreadyStoredException
from infrastructure.models.token import TokenModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTokenRepository(TokenRepository):
    """Token 仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TokenModel) -> StoredToken:
        return StoredToken(
            id=model.id,
            shopper_reference=model.shopper_reference,
            recurring_detail_reference=model.recurring_detail_reference,
            brand=model.brand,
            summary=model.summary,
            payment_method_type=model.payment_method_type,
            expiry_month=model.expiry_month,
            expiry_year=model.expiry_year,
            created_at=model.created_at,
        )

    async def create(self, token: StoredToken) -> StoredToken:
        """创建 token（唯一约束冲突只回滚保存点）"""
        now = datetime.now(timezone.utc)
        db_token = TokenModel(
            id=token.id,
            shopper_reference=token.shopper_reference,
            recurring_detail_reference=token.recurring_detail_reference,
            brand=token.brand,
            summary=token.summary,
            payment_method_type=token.payment_method_type,
            expiry_month=token.expiry_month,
            expiry_year=token.expiry_year,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(db_token)
        except IntegrityError:
            logger.warning(
                "token_create_conflict",
                shopper_reference=token.shopper_reference,
                recurring_detail_reference=token.recurring_detail_reference,
            )
            raise TokenAlreadyStoredException(token.shopper_reference, token.recurring_detail_reference)
        await self.session.refresh(db_token)
        logger.info(
            "token_stored",
            token_id=db_token.id,
            shopper_reference=db_token.shopper_reference,
            recurring_detail_reference=db_token.recurring_detail_reference,
        )
        return self._to_entity(db_token)

    async def get_by_key(self, shopper_reference: str, recurring_detail_reference: str) -> Optional[StoredToken]:
        result = await self.session.execute(
            select(TokenModel).where(
                TokenModel.shopper_reference == shopper_reference,
                TokenModel.recurring_detail_reference == recurring_detail_reference,
            )
        )
        db_token = result.scalar_one_or_none()
        return self._to_entity(db_token) if db_token else None

    async def list_by_shopper(self, shopper_reference: str) -> List[StoredToken]:
        result = await self.session.execute(
            select(TokenModel)
            .where(TokenModel.shopper_reference == shopper_reference)
            .order_by(TokenModel.created_at.asc())
        )
        return [self._to_entity(t) for t in result.scalars().all()]
