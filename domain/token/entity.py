"""
可复用支付方式（token）实体
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass
class StoredToken:
    """
    以 (shopper_reference, recurring_detail_reference) 唯一标识的已存储支付方式
    """

    id: str
    shopper_reference: str
    recurring_detail_reference: str
    brand: Optional[str]
    summary: Optional[str]
    payment_method_type: Optional[str]
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None and self.created_at.tzinfo is None:
            self.created_at = self.created_at.replace(tzinfo=timezone.utc)

    @property
    def key(self) -> tuple[str, str]:
        return (self.shopper_reference, self.recurring_detail_reference)
