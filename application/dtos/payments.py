"""
Checkout DTOs (Pydantic v2) used at application boundaries.

Request bodies use the camelCase field names of the public HTTP API; gateway
records model the subset of Checkout API responses the services consume.
Open maps (action payloads, additionalData, paymentMethod) stay as dicts.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator
from pydantic.alias_generators import to_camel

from domain.common.money import Amount


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AmountDTO(CamelModel):
    value: StrictInt
    currency: str = Field(min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u

    def to_domain(self) -> Amount:
        return Amount(value=self.value, currency=self.currency)

    @classmethod
    def from_domain(cls, amount: Amount) -> "AmountDTO":
        return cls(value=amount.value, currency=amount.currency)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateOrderRequest(CamelModel):
    amount: AmountDTO


class CreatePaymentRequest(CamelModel):
    order_id: str = Field(min_length=1)
    amount: AmountDTO
    payment_method: dict[str, Any]
    store_payment_method: bool = False
    shopper_reference: Optional[str] = None
    browser_info: Optional[dict[str, Any]] = None
    return_url: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def _payment_method_not_empty(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not v:
            raise ValueError("paymentMethod is required")
        return v


class PaymentDetailsRequest(CamelModel):
    details: Optional[dict[str, Any]] = None
    payload: Optional[str] = None

    def resolved_details(self) -> dict[str, Any]:
        """`details` wins; a bare `payload` is wrapped as {"payload": ...}."""
        if self.details:
            return dict(self.details)
        if self.payload:
            return {"payload": self.payload}
        return {}


class CreateSessionRequest(CamelModel):
    amount: AmountDTO
    path: str = ""


class PaymentMethodsRequest(CamelModel):
    amount: Optional[AmountDTO] = None


# ---------------------------------------------------------------------------
# Gateway records
# ---------------------------------------------------------------------------


class GatewayOrder(CamelModel):
    """Response of create-order."""
    psp_reference: str
    amount: AmountDTO
    remaining_amount: AmountDTO
    order_data: Optional[str] = None
    expires_at: Optional[str] = None
    result_code: Optional[str] = None


class GatewayOrderCancellation(CamelModel):
    psp_reference: Optional[str] = None
    result_code: Optional[str] = None


class GatewayOrderSnapshot(CamelModel):
    """`order` block echoed back on payment responses."""
    psp_reference: Optional[str] = None
    order_data: Optional[str] = None
    remaining_amount: Optional[AmountDTO] = None
    amount: Optional[AmountDTO] = None


class GatewayPaymentResult(CamelModel):
    """Response of submit-payment and submit-payment-details."""
    psp_reference: Optional[str] = None
    result_code: Optional[str] = None
    merchant_reference: Optional[str] = None
    refusal_reason: Optional[str] = None
    action: Optional[dict[str, Any]] = None
    additional_data: dict[str, Any] = Field(default_factory=dict)
    order: Optional[GatewayOrderSnapshot] = None
    payment_method: Optional[dict[str, Any]] = None

    @field_validator("additional_data", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or {}


class GatewaySession(CamelModel):
    id: str
    session_data: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class OrderCreatedResponse(CamelModel):
    order_id: str
    gateway_order_reference: str
    merchant_reference: str
    status: str
    total_amount: AmountDTO
    remaining_amount: AmountDTO
    order_data: Optional[str] = None
    expires_at: Optional[str] = None


class OrderCancelResponse(CamelModel):
    order_id: str
    cancel_request_reference: Optional[str] = None
    status: str
    message: str


class OrderStatusSnapshot(CamelModel):
    remaining_amount: AmountDTO
    order_data: Optional[str] = None


class PaymentAttemptResponse(CamelModel):
    payment_id: str
    order_id: str
    gateway_reference: Optional[str] = None
    result_code: Optional[str] = None
    action: Optional[dict[str, Any]] = None
    refusal_reason: Optional[str] = None
    order_status: OrderStatusSnapshot
    message: Optional[str] = None


class PaymentDetailsResponse(CamelModel):
    payment_id: str
    order_id: str
    gateway_reference: Optional[str] = None
    result_code: Optional[str] = None
    refusal_reason: Optional[str] = None
    order_status: OrderStatusSnapshot
    message: str
    # When set, the HTTP layer redirects the shopper here instead of returning JSON
    redirect_url: Optional[str] = Field(default=None, exclude=True)


class StoredPaymentMethodDTO(CamelModel):
    id: str
    recurring_detail_reference: str
    brand: Optional[str] = None
    name: Optional[str] = None
    last_four: Optional[str] = None
    expiry_month: Optional[str] = None
    expiry_year: Optional[str] = None
    payment_method_type: Optional[str] = None
    shopper_reference: str
    created_at: Optional[str] = None


class StoredPaymentMethodsResponse(CamelModel):
    stored_payment_methods: list[StoredPaymentMethodDTO]


class SessionResponse(CamelModel):
    id: str
    session_data: str
