"""
订单领域实体 - 订单聚合根

订单镜像网关侧的 order 资源，允许多笔部分支付。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidStateException
from domain.common.money import Amount


class OrderStatus(str, Enum):
    """订单状态枚举"""
    OPEN = "open"
    PROCESSING = "processing"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    PAID = "paid"


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED})
PAYABLE_ORDER_STATUSES = frozenset({OrderStatus.OPEN, OrderStatus.PROCESSING})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def merchant_reference_for(order_id: str) -> str:
    return f"ORDER-{order_id}"


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. 币种在创建后不可变
    2. open/processing 状态下剩余金额单调不增
    3. paid/cancelled 为终态，除 paid 时清零剩余金额外不再写入
    4. orderDataHistory 只追加，最后一个元素为当前 continuation token
    5. 部分支付引用集合去重
    """

    id: str
    gateway_order_reference: str
    merchant_reference: str
    status: OrderStatus
    total_amount: Amount
    remaining_amount: Amount
    order_data_history: list[str] = field(default_factory=list)
    partial_payment_psp_references: list[str] = field(default_factory=list)
    expires_at: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.remaining_amount.same_currency(self.total_amount):
            raise DomainValidationException(
                "Remaining amount currency differs from order currency",
                field="remaining_amount.currency",
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def currency(self) -> str:
        return self.total_amount.currency

    @property
    def current_order_data(self) -> Optional[str]:
        return self.order_data_history[-1] if self.order_data_history else None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def ensure_accepts_payment(self, amount: Amount) -> None:
        """Check a new payment attempt against status, currency and balance."""
        if self.status not in PAYABLE_ORDER_STATUSES:
            raise InvalidStateException(
                f"Order status is '{self.status.value}', cannot make further payments.",
                status=self.status.value,
                details={"order_id": self.id},
            )
        if amount.value <= 0:
            raise DomainValidationException(
                f"Payment amount must be greater than 0: {amount.value}",
                field="amount.value",
            )
        if amount.currency != self.currency:
            raise DomainValidationException(
                f"Payment currency {amount.currency} does not match order currency {self.currency}.",
                field="amount.currency",
            )
        if amount.value > self.remaining_amount.value:
            raise DomainValidationException(
                f"Payment amount {amount.value} exceeds remaining order amount {self.remaining_amount.value}.",
                field="amount.value",
                details={"remaining_amount": self.remaining_amount.to_dict()},
            )

    def ensure_cancellable(self) -> None:
        if self.is_terminal():
            raise InvalidStateException(
                f"Order status is '{self.status.value}', it cannot be cancelled.",
                status=self.status.value,
                details={"order_id": self.id},
            )

    def mark_cancelling(self) -> None:
        """取消请求已被网关受理；cancelled 只能由 webhook 写入"""
        self.ensure_cancellable()
        self.status = OrderStatus.CANCELLING

    def mark_processing(self) -> bool:
        """open -> processing；其余状态保持不变"""
        if self.status == OrderStatus.OPEN:
            self.status = OrderStatus.PROCESSING
            return True
        return False

    def apply_gateway_update(self, order_data: Optional[str], remaining_amount: Optional[Amount]) -> bool:
        """
        应用网关返回的订单快照（continuation token 与剩余金额）

        终态订单忽略更新；剩余金额只会减少。
        """
        if self.is_terminal():
            return False
        if order_data:
            self.order_data_history.append(order_data)
        if remaining_amount is not None:
            if not remaining_amount.same_currency(self.total_amount):
                raise DomainValidationException(
                    f"Gateway remaining amount currency {remaining_amount.currency} "
                    f"differs from order currency {self.currency}",
                    field="remaining_amount.currency",
                )
            if remaining_amount.value <= self.remaining_amount.value:
                self.remaining_amount = remaining_amount
        return True

    def confirm_open(self) -> bool:
        """ORDER_OPENED：确认 open 状态，不回退已推进的状态"""
        return self.status == OrderStatus.OPEN

    def close(self, success: bool) -> bool:
        """
        ORDER_CLOSED：success -> paid（剩余金额清零），否则 cancelled

        返回是否发生状态写入；重复投递同一结果为无副作用。
        """
        target = OrderStatus.PAID if success else OrderStatus.CANCELLED
        if self.is_terminal():
            return False
        self.status = target
        if target == OrderStatus.PAID:
            self.remaining_amount = self.remaining_amount.zeroed()
        return True

    def record_authorised_payment(self, psp_reference: str) -> bool:
        """AUTHORISATION success：幂等地加入部分支付引用并推进到 processing"""
        if self.is_terminal():
            return False
        added = False
        if psp_reference and psp_reference not in self.partial_payment_psp_references:
            self.partial_payment_psp_references.append(psp_reference)
            added = True
        self.mark_processing()
        return added
