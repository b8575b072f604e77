"""Pytest bootstrap configuration.

Point settings at an in-memory database before application modules are
imported, and provide a scripted gateway plus a per-test SQLite ledger.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

import itertools
import json
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.payments import (
    AmountDTO,
    GatewayOrder,
    GatewayOrderCancellation,
    GatewayPaymentResult,
    GatewaySession,
)
from core.settings import AdyenSettings, WebhookSettings
from domain.common.exceptions import PaymentGatewayError
from domain.common.money import Amount
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


HMAC_KEY = "44782DEF547AAA06C910C43932B1EB0C71FC68D9D0C057550C48EC2ACF6BA056"


class StubGateway:
    """Scripted CheckoutGateway that tracks each gateway order's balance."""

    provider = "stub"

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.payment_results: list[GatewayPaymentResult] = []
        self.details_results: list[GatewayPaymentResult] = []
        self.errors: dict[str, PaymentGatewayError] = {}
        self.remaining: dict[str, int] = {}
        self._seq = itertools.count(1)

    def _enter(self, name: str, **kwargs: Any) -> None:
        self.calls.append((name, kwargs))
        if name in self.errors:
            raise self.errors[name]

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kw for n, kw in self.calls if n == name]

    async def create_order(self, *, amount: Amount, reference: str, idempotency_key: str) -> GatewayOrder:
        self._enter("create_order", amount=amount, reference=reference, idempotency_key=idempotency_key)
        n = next(self._seq)
        psp = f"ORDERPSP{n:04d}"
        self.remaining[psp] = amount.value
        return GatewayOrder.model_validate({
            "pspReference": psp,
            "amount": amount.to_dict(),
            "remainingAmount": amount.to_dict(),
            "orderData": f"{psp}-data-0",
            "expiresAt": "2026-10-20T12:00:00Z",
            "resultCode": "Success",
        })

    async def cancel_order(self, *, order_psp_reference: str, order_data: Optional[str]) -> GatewayOrderCancellation:
        self._enter("cancel_order", order_psp_reference=order_psp_reference, order_data=order_data)
        return GatewayOrderCancellation(psp_reference=f"CANCEL-{order_psp_reference}", result_code="Received")

    async def submit_payment(self, request: dict[str, Any], *, idempotency_key: Optional[str] = None) -> GatewayPaymentResult:
        self._enter("submit_payment", request=request, idempotency_key=idempotency_key)
        if self.payment_results:
            return self.payment_results.pop(0)
        n = next(self._seq)
        order_psp = request["order"]["pspReference"]
        self.remaining[order_psp] -= request["amount"]["value"]
        return GatewayPaymentResult.model_validate({
            "pspReference": f"PAYPSP{n:04d}",
            "resultCode": "Authorised",
            "merchantReference": request["reference"],
            "order": {
                "pspReference": order_psp,
                "orderData": f"{order_psp}-data-{n}",
                "remainingAmount": {"value": self.remaining[order_psp], "currency": request["amount"]["currency"]},
            },
        })

    async def submit_payment_details(self, *, details: dict[str, Any], payment_data: Optional[str] = None) -> GatewayPaymentResult:
        self._enter("submit_payment_details", details=details, payment_data=payment_data)
        if self.details_results:
            return self.details_results.pop(0)
        return GatewayPaymentResult.model_validate({"pspReference": "DETAILSPSP", "resultCode": "Authorised"})

    async def create_session(self, *, amount: Amount, reference: str, return_url: str, idempotency_key: str) -> GatewaySession:
        self._enter("create_session", amount=amount, reference=reference, return_url=return_url, idempotency_key=idempotency_key)
        return GatewaySession(id="CS-1", session_data="session-blob")

    async def list_payment_methods(self, *, amount: Optional[Amount] = None) -> dict[str, Any]:
        self._enter("list_payment_methods", amount=amount)
        return {"paymentMethods": [{"type": "scheme", "name": "Cards"}]}

    def verify_notification(self, item: dict[str, Any], hmac_key: str) -> bool:
        return (item.get("additionalData") or {}).get("hmacSignature") == f"sig:{hmac_key}"


def notification_item(
    event_code: str,
    psp_reference: str,
    *,
    success: str = "true",
    merchant_reference: str = "",
    amount: Optional[dict[str, Any]] = None,
    reason: str = "",
    additional_data: Optional[dict[str, Any]] = None,
    signature: Optional[str] = f"sig:{HMAC_KEY}",
    original_reference: Optional[str] = None,
) -> dict[str, Any]:
    item: dict[str, Any] = {
        "eventCode": event_code,
        "success": success,
        "pspReference": psp_reference,
        "merchantReference": merchant_reference,
        "merchantAccountCode": "TestMerchant",
        "amount": amount or {"value": 0, "currency": "USD"},
        "reason": reason,
        "additionalData": dict(additional_data or {}),
    }
    if original_reference:
        item["originalReference"] = original_reference
    if signature is not None:
        item["additionalData"]["hmacSignature"] = signature
    return item


def notification_body(*items: dict[str, Any]) -> bytes:
    """Wrap items as NotificationRequestItem; dicts without eventCode are passed through as malformed entries."""
    wrapped = [{"NotificationRequestItem": i} if "eventCode" in i else i for i in items]
    return json.dumps({"live": "false", "notificationItems": wrapped}).encode("utf-8")


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def adyen_settings() -> AdyenSettings:
    return AdyenSettings(api_key="test-api-key", merchant_account="TestMerchant", hmac_key=HMAC_KEY)


@pytest.fixture
def webhook_settings() -> WebhookSettings:
    return WebhookSettings()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)
    return _factory


@pytest.fixture
def usd():
    def _amount(value: int) -> AmountDTO:
        return AmountDTO(value=value, currency="USD")
    return _amount
