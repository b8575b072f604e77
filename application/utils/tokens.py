"""
Extraction of stored-payment-method fields from gateway additionalData.
"""
from __future__ import annotations

from typing import Any, Optional, NamedTuple


class TokenFields(NamedTuple):
    recurring_detail_reference: Optional[str]
    shopper_reference: Optional[str]
    brand: Optional[str]
    summary: str
    expiry_month: Optional[str]
    expiry_year: Optional[str]


def _split_expiry(expiry_date: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    # additionalData.expiryDate looks like "3/2030"
    if not expiry_date or "/" not in str(expiry_date):
        return None, None
    month, _, year = str(expiry_date).partition("/")
    month = month.strip()
    year = year.strip()
    if not month.isdigit() or not year.isdigit():
        return None, None
    return month.zfill(2), year


def extract_token_fields(
    additional_data: Optional[dict[str, Any]],
    *,
    fallback_brand: Optional[str] = None,
) -> TokenFields:
    data = additional_data or {}
    recurring = data.get("recurring") if isinstance(data.get("recurring"), dict) else {}
    detail_reference = (
        data.get("recurringDetailReference")
        or data.get("recurring.recurringDetailReference")
        or recurring.get("recurringDetailReference")
        or data.get("tokenization.storedPaymentMethodId")
    )
    shopper_reference = (
        data.get("recurring.shopperReference")
        or recurring.get("shopperReference")
        or data.get("shopperReference")
        or data.get("tokenization.shopperReference")
    )
    month, year = _split_expiry(data.get("expiryDate"))
    return TokenFields(
        recurring_detail_reference=detail_reference,
        shopper_reference=shopper_reference,
        brand=data.get("paymentMethodVariant") or fallback_brand,
        summary=data.get("cardSummary") or "N/A",
        expiry_month=month,
        expiry_year=year,
    )
