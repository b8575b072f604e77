"""
Checkout gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    GatewayOrder,
    GatewayOrderCancellation,
    GatewayPaymentResult,
    GatewaySession,
)
from domain.common.money import Amount


@runtime_checkable
class CheckoutGateway(Protocol):
    """Remote payment gateway contract.

    Every call either returns a parsed record or raises
    ``PaymentGatewayError``; implementations never retry on their own.
    """

    provider: str

    async def create_order(self, *, amount: Amount, reference: str, idempotency_key: str) -> GatewayOrder: ...

    async def cancel_order(self, *, order_psp_reference: str, order_data: Optional[str]) -> GatewayOrderCancellation: ...

    async def submit_payment(
        self, request: dict[str, Any], *, idempotency_key: Optional[str] = None
    ) -> GatewayPaymentResult: ...

    async def submit_payment_details(
        self, *, details: dict[str, Any], payment_data: Optional[str] = None
    ) -> GatewayPaymentResult: ...

    async def create_session(
        self, *, amount: Amount, reference: str, return_url: str, idempotency_key: str
    ) -> GatewaySession: ...

    async def list_payment_methods(self, *, amount: Optional[Amount] = None) -> dict[str, Any]: ...

    def verify_notification(self, item: dict[str, Any], hmac_key: str) -> bool: ...


@runtime_checkable
class NotificationVerifier(Protocol):
    """Webhook signature check; needs only the shared HMAC secret, not API credentials."""

    def verify_notification(self, item: dict[str, Any], hmac_key: str) -> bool: ...
