"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, comment="内部订单ID")
    gateway_order_reference = Column(String(64), nullable=False, index=True, comment="网关订单引用")
    merchant_reference = Column(String(80), unique=True, nullable=False, comment="商户订单引用 ORDER-{id}")

    status = Column(
        String(20),
        nullable=False,
        default="open",
        index=True,
        comment="订单状态: open/processing/cancelling/cancelled/paid"
    )

    # 金额以最小货币单位存储，币种创建后不可变
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")
    total_amount_value = Column(Integer, nullable=False, comment="订单总额")
    remaining_amount_value = Column(Integer, nullable=False, comment="剩余待付金额")

    order_data_history = Column(JSON, nullable=False, default=list, comment="网关 orderData 历史（只追加）")
    partial_payment_psp_references = Column(JSON, nullable=False, default=list, comment="已授权部分支付引用")
    expires_at = Column(String(40), nullable=True, comment="网关订单过期时间")

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
        Index("ix_orders_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id='{self.id}', reference='{self.gateway_order_reference}', "
            f"status='{self.status}', remaining={self.remaining_amount_value} {self.currency})>"
        )
