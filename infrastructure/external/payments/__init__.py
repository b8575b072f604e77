"""
Factories for the checkout gateway client and the webhook signature verifier.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import CheckoutGateway, NotificationVerifier


def get_payment_gateway(settings: Optional[PaymentSettings] = None) -> CheckoutGateway:
    from .adyen_client import AdyenCheckoutClient

    cfg = settings or payment_settings
    return AdyenCheckoutClient(cfg.adyen, cfg.timeouts)


def get_notification_verifier() -> NotificationVerifier:
    """Webhook verification only needs HMAC keys, not Checkout API credentials."""
    from .adyen_client import AdyenNotificationVerifier

    return AdyenNotificationVerifier()
