"""
已存储支付方式（token）数据库模型
"""
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from datetime import datetime, timezone

from .base import Base


class TokenModel(Base):
    __tablename__ = "tokens"

    id = Column(String(36), primary_key=True)
    shopper_reference = Column(String(128), nullable=False, index=True, comment="购物者引用")
    recurring_detail_reference = Column(String(64), nullable=False, comment="网关 recurringDetailReference")
    brand = Column(String(50), nullable=True, comment="卡品牌 / paymentMethodVariant")
    summary = Column(String(50), nullable=True, comment="展示摘要（卡号后四位）")
    payment_method_type = Column(String(50), nullable=True)
    expiry_month = Column(String(2), nullable=True)
    expiry_year = Column(String(4), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        UniqueConstraint("shopper_reference", "recurring_detail_reference", name="uq_tokens_shopper_detail"),
    )

    def __repr__(self):
        return f"<TokenModel(id='{self.id}', shopper='{self.shopper_reference}', brand='{self.brand}')>"
