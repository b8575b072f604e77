"""
支付尝试数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index, ForeignKey
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付尝试数据库模型

    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, comment="内部支付尝试ID")
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="所属订单ID"
    )
    merchant_reference = Column(String(80), unique=True, nullable=False, comment="商户引用 PAYMENT-{id}")
    psp_reference = Column(String(64), nullable=True, index=True, comment="网关支付引用（挑战完成前可能为空）")

    amount_value = Column(Integer, nullable=False, comment="支付金额（最小货币单位）")
    currency = Column(String(3), nullable=False, comment="货币代码")
    payment_method_type = Column(String(50), nullable=True, comment="支付方式类型")

    status = Column(String(40), nullable=False, index=True, comment="临时 resultCode 或 webhook 终态")
    result_code = Column(String(40), nullable=True, comment="最近一次同步 resultCode")
    action = Column(JSON, nullable=True, comment="待转交购物者的挑战载荷")
    refusal_reason = Column(Text, nullable=True, comment="拒绝原因")

    shopper_reference = Column(String(128), nullable=True, comment="请求存储支付方式时的购物者引用")
    client_return_url = Column(String(500), nullable=True, comment="客户端回跳地址")

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
        Index("ix_payments_order_status", "order_id", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', order_id='{self.order_id}', "
            f"psp_reference='{self.psp_reference}', status='{self.status}')>"
        )
