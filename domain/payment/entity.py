"""
支付尝试领域实体

一次支付尝试对应对订单的一次资金提交。同步返回的 resultCode 只是临时状态，
最终状态（authorised/refused/cancelled）由 webhook 对账写入。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.money import Amount


class PaymentStatus(str, Enum):
    """支付尝试状态枚举"""
    # 本地临时状态
    PENDING_ACTION = "pendingAction"
    PENDING_WEBHOOK = "pendingWebhook"

    # 网关同步 resultCode
    AUTHORISED_SYNC = "Authorised"
    REFUSED_SYNC = "Refused"
    ERROR = "Error"
    CANCELLED_SYNC = "Cancelled"
    RECEIVED = "Received"
    PENDING = "Pending"
    CHALLENGE_SHOPPER = "ChallengeShopper"
    IDENTIFY_SHOPPER = "IdentifyShopper"
    REDIRECT_SHOPPER = "RedirectShopper"
    PRESENT_TO_SHOPPER = "PresentToShopper"
    PARTIALLY_AUTHORISED = "PartiallyAuthorised"
    AUTHENTICATION_FINISHED = "AuthenticationFinished"
    AUTHENTICATION_NOT_REQUIRED = "AuthenticationNotRequired"

    # webhook 对账终态
    AUTHORISED = "authorised"
    REFUSED = "refused"
    CANCELLED = "cancelled"

    @classmethod
    def from_result_code(cls, result_code: Optional[str], default: "PaymentStatus") -> "PaymentStatus":
        if not result_code:
            return default
        try:
            return cls(result_code)
        except ValueError:
            return cls.PENDING_WEBHOOK


TERMINAL_PAYMENT_STATUSES = frozenset({
    PaymentStatus.AUTHORISED,
    PaymentStatus.REFUSED,
    PaymentStatus.CANCELLED,
})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def merchant_reference_for(payment_id: str) -> str:
    return f"PAYMENT-{payment_id}"


@dataclass
class Payment:
    """
    支付尝试聚合

    业务规则：
    1. 金额在创建时不得超过订单剩余金额（由订单校验）
    2. webhook 写入的终态不能被之后的同步响应覆盖
    3. 挑战载荷（action）在提交 details 后清除
    """

    id: str
    order_id: str
    merchant_reference: str
    amount: Amount
    payment_method_type: Optional[str]
    status: PaymentStatus
    psp_reference: Optional[str] = None
    result_code: Optional[str] = None
    action: Optional[dict[str, Any]] = None
    refusal_reason: Optional[str] = None
    shopper_reference: Optional[str] = None
    client_return_url: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def is_final_status(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES

    @property
    def challenge_payment_data(self) -> Optional[str]:
        if not self.action:
            return None
        return self.action.get("paymentData")

    def apply_synchronous_result(
        self,
        *,
        result_code: Optional[str],
        psp_reference: Optional[str],
        refusal_reason: Optional[str],
        default_status: PaymentStatus = PaymentStatus.PENDING_WEBHOOK,
    ) -> bool:
        """
        应用 /payments/details 的同步结果

        已由 webhook 写入终态时只回填缺失的网关引用，状态保持不变。
        """
        if psp_reference and not self.psp_reference:
            self.psp_reference = psp_reference
        self.action = None
        if self.is_final_status():
            return False
        self.status = PaymentStatus.from_result_code(result_code, default_status)
        self.result_code = result_code
        self.refusal_reason = refusal_reason
        if psp_reference:
            self.psp_reference = psp_reference
        return True

    def mark_authorised(self, psp_reference: Optional[str]) -> None:
        self.status = PaymentStatus.AUTHORISED
        self.refusal_reason = None
        if psp_reference:
            self.psp_reference = psp_reference

    def mark_refused(self, psp_reference: Optional[str], reason: Optional[str]) -> None:
        self.status = PaymentStatus.REFUSED
        self.refusal_reason = reason
        if psp_reference:
            self.psp_reference = psp_reference

    def mark_cancelled(self, reason: Optional[str]) -> None:
        self.status = PaymentStatus.CANCELLED
        self.refusal_reason = reason
