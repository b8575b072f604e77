"""
Adyen Checkout API adapter.

HTTP calls go through httpx (see ``BasePaymentClient``) against the versioned
Checkout endpoints with the ``X-API-Key`` header. Notification HMAC
verification (``AdyenNotificationVerifier``) uses the official Adyen library
(``Adyen.util.is_valid_hmac_notification``), which signs the item fields
pspReference:originalReference:merchantAccountCode:merchantReference:value:
currency:eventCode:success and compares against
``additionalData.hmacSignature``.
"""
from __future__ import annotations

import binascii
from typing import Any, Optional

import httpx
from Adyen.util import is_valid_hmac_notification

from application.dtos.payments import (
    GatewayOrder,
    GatewayOrderCancellation,
    GatewayPaymentResult,
    GatewaySession,
)
from core.logging_config import get_logger
from core.settings import AdyenSettings, PaymentTimeouts
from domain.common.exceptions import PaymentGatewayError
from domain.common.money import Amount
from infrastructure.external.payments.base import BasePaymentClient


logger = get_logger(__name__)


class AdyenNotificationVerifier:
    """
    HMAC check for one NotificationRequestItem

    Needs only the shared secret, so webhooks can be verified without Checkout
    API credentials. Malformed items count as invalid.
    """

    def verify_notification(self, item: dict[str, Any], hmac_key: str) -> bool:
        additional_data = item.get("additionalData")
        if not isinstance(additional_data, dict):
            return False
        signature = additional_data.get("hmacSignature")
        if not signature or not isinstance(signature, str):
            return False
        try:
            return bool(is_valid_hmac_notification(item, hmac_key))
        except (AttributeError, KeyError, TypeError, ValueError, binascii.Error) as exc:
            logger.warning(
                "webhook_hmac_check_error",
                psp_reference=item.get("pspReference"),
                error=str(exc),
            )
            return False


class AdyenCheckoutClient(BasePaymentClient):
    provider = "adyen"

    def __init__(
        self,
        adyen: AdyenSettings,
        timeouts: Optional[PaymentTimeouts] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not adyen.api_key:
            raise RuntimeError("PAYMENT__ADYEN__API_KEY not configured")
        if not adyen.merchant_account:
            raise RuntimeError("PAYMENT__ADYEN__MERCHANT_ACCOUNT not configured")
        super().__init__(
            base_url=adyen.checkout_base_url,
            timeouts=(timeouts or PaymentTimeouts()).model_dump(),
            transport=transport,
        )
        self._api_key = adyen.api_key
        self.merchant_account = adyen.merchant_account
        self._verifier = AdyenNotificationVerifier()

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["X-API-Key"] = self._api_key
        return headers

    def _map_error(self, status_code: int, data: dict[str, Any]) -> PaymentGatewayError:
        # Adyen error body: {status, errorCode, message, errorType, pspReference}
        return PaymentGatewayError(
            data.get("message") or f"Adyen API returned HTTP {status_code}",
            status_code=status_code,
            details=data,
            psp_reference=data.get("pspReference"),
            error_code=data.get("errorCode"),
        )

    @staticmethod
    def _parse(model, data: dict[str, Any], path: str):
        try:
            return model.model_validate(data)
        except ValueError as exc:
            raise PaymentGatewayError(
                f"Unexpected response from {path}",
                status_code=502,
                details={"path": path, "response": data},
                psp_reference=data.get("pspReference"),
            ) from exc

    async def create_order(self, *, amount: Amount, reference: str, idempotency_key: str) -> GatewayOrder:
        body = {
            "merchantAccount": self.merchant_account,
            "amount": amount.to_dict(),
            "reference": reference,
        }
        data = await self._post_json("/orders", body, idempotency_key=idempotency_key)
        return self._parse(GatewayOrder, data, "/orders")

    async def cancel_order(self, *, order_psp_reference: str, order_data: Optional[str]) -> GatewayOrderCancellation:
        body = {
            "merchantAccount": self.merchant_account,
            "order": {"pspReference": order_psp_reference, "orderData": order_data},
        }
        data = await self._post_json("/orders/cancel", body)
        return self._parse(GatewayOrderCancellation, data, "/orders/cancel")

    async def submit_payment(
        self, request: dict[str, Any], *, idempotency_key: Optional[str] = None
    ) -> GatewayPaymentResult:
        body = {"merchantAccount": self.merchant_account, **request}
        data = await self._post_json("/payments", body, idempotency_key=idempotency_key)
        return self._parse(GatewayPaymentResult, data, "/payments")

    async def submit_payment_details(
        self, *, details: dict[str, Any], payment_data: Optional[str] = None
    ) -> GatewayPaymentResult:
        body: dict[str, Any] = {"details": details}
        if payment_data:
            body["paymentData"] = payment_data
        data = await self._post_json("/payments/details", body)
        return self._parse(GatewayPaymentResult, data, "/payments/details")

    async def create_session(
        self, *, amount: Amount, reference: str, return_url: str, idempotency_key: str
    ) -> GatewaySession:
        body = {
            "merchantAccount": self.merchant_account,
            "amount": amount.to_dict(),
            "reference": reference,
            "returnUrl": return_url,
        }
        data = await self._post_json("/sessions", body, idempotency_key=idempotency_key)
        return self._parse(GatewaySession, data, "/sessions")

    async def list_payment_methods(self, *, amount: Optional[Amount] = None) -> dict[str, Any]:
        body: dict[str, Any] = {"merchantAccount": self.merchant_account}
        if amount is not None:
            body["amount"] = amount.to_dict()
        return await self._post_json("/paymentMethods", body)

    def verify_notification(self, item: dict[str, Any], hmac_key: str) -> bool:
        return self._verifier.verify_notification(item, hmac_key)
