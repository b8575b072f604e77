import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from Adyen.util import generate_notification_sig

from api.dependencies import get_gateway, get_payment_settings, get_uow_factory
from application.dtos.payments import GatewayPaymentResult
from core.settings import AdyenSettings, PaymentSettings
from domain.token import TokenVault
from infrastructure.external.payments import get_notification_verifier
from main import app

from conftest import HMAC_KEY, notification_body, notification_item


CARD = {"type": "scheme", "encryptedCardNumber": "enc", "encryptedSecurityCode": "enc"}


@pytest_asyncio.fixture
async def client(uow_factory, gateway, adyen_settings, webhook_settings):
    cfg = PaymentSettings(adyen=adyen_settings, webhook=webhook_settings)
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_verifier] = lambda: gateway
    app.dependency_overrides[get_payment_settings] = lambda: cfg
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()


async def create_order(client, value=1000):
    resp = await client.post("/api/orders", json={"amount": {"value": value, "currency": "USD"}})
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_health_and_root(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    root = await client.get("/")
    assert root.json()["code"] == 0
    assert "X-Request-ID" in root.headers


@pytest.mark.asyncio
async def test_create_order_returns_camel_case(client):
    body = await create_order(client)
    assert body["status"] == "open"
    assert body["totalAmount"] == {"value": 1000, "currency": "USD"}
    assert body["remainingAmount"] == {"value": 1000, "currency": "USD"}
    assert body["gatewayOrderReference"].startswith("ORDERPSP")
    assert body["merchantReference"] == f"ORDER-{body['orderId']}"


@pytest.mark.asyncio
async def test_validation_errors_use_envelope(client):
    resp = await client.post("/api/orders", json={"amount": {"value": "10", "currency": "USD"}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["data"] is None
    assert body["error"]["type"] == "ValidationError"
    assert body["error"]["request_id"]

    resp = await client.post("/api/orders", json={"amount": {"value": 0, "currency": "USD"}})
    assert resp.status_code == 400
    assert resp.json()["error"]["field"] == "amount.value"


@pytest.mark.asyncio
async def test_cancel_unknown_order_is_404(client):
    resp = await client.post("/api/orders/missing/cancel")
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "OrderNotFound"


@pytest.mark.asyncio
async def test_cancel_order(client):
    order = await create_order(client)
    resp = await client.post(f"/api/orders/{order['orderId']}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelling"

    again = await client.post(
        "/api/payments",
        json={"orderId": order["orderId"], "amount": {"value": 100, "currency": "USD"}, "paymentMethod": CARD},
    )
    assert again.status_code == 400
    assert again.json()["error"]["type"] == "InvalidState"


@pytest.mark.asyncio
async def test_payment_attempt_and_overpayment(client, gateway):
    order = await create_order(client)
    resp = await client.post(
        "/api/payments",
        json={"orderId": order["orderId"], "amount": {"value": 250, "currency": "USD"}, "paymentMethod": CARD},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["resultCode"] == "Authorised"
    assert body["orderStatus"]["remainingAmount"]["value"] == 750
    assert gateway.calls_to("submit_payment")[0]["request"]["origin"] == "http://test"

    over = await client.post(
        "/api/payments",
        json={"orderId": order["orderId"], "amount": {"value": 751, "currency": "USD"}, "paymentMethod": CARD},
    )
    assert over.status_code == 400
    assert over.json()["error"]["field"] == "amount.value"


@pytest.mark.asyncio
async def test_gateway_error_status_is_propagated(client, gateway):
    from domain.common.exceptions import PaymentGatewayError

    gateway.errors["create_order"] = PaymentGatewayError("Gateway timeout", status_code=504)
    resp = await client.post("/api/orders", json={"amount": {"value": 100, "currency": "USD"}})
    assert resp.status_code == 504
    assert resp.json()["error"]["type"] == "GatewayError"


@pytest.mark.asyncio
async def test_details_redirect_and_json(client, gateway):
    order = await create_order(client)
    gateway.payment_results.append(GatewayPaymentResult.model_validate({
        "resultCode": "RedirectShopper", "action": {"type": "redirect"},
    }))
    redirected = (await client.post(
        "/api/payments",
        json={
            "orderId": order["orderId"],
            "amount": {"value": 100, "currency": "USD"},
            "paymentMethod": CARD,
            "returnUrl": "https://shop.test/done",
        },
    )).json()

    resp = await client.get(f"/api/payments/details/{redirected['paymentId']}", params={"redirectResult": "abc"})
    assert resp.status_code == 303
    assert resp.headers["location"].startswith("https://shop.test/done?resultCode=Authorised")
    assert gateway.calls_to("submit_payment_details")[0]["details"] == {"redirectResult": "abc"}

    gateway.payment_results.append(GatewayPaymentResult.model_validate({
        "resultCode": "ChallengeShopper", "action": {"type": "threeDS2", "paymentData": "pd"},
    }))
    challenged = (await client.post(
        "/api/payments",
        json={"orderId": order["orderId"], "amount": {"value": 100, "currency": "USD"}, "paymentMethod": CARD},
    )).json()
    resp = await client.post(
        f"/api/payments/details/{challenged['paymentId']}",
        json={"details": {"threeDSResult": "xyz"}},
    )
    assert resp.status_code == 200
    assert resp.json()["resultCode"] == "Authorised"
    assert "redirectUrl" not in resp.json()
    assert gateway.calls_to("submit_payment_details")[1] == {"details": {"threeDSResult": "xyz"}, "payment_data": "pd"}


@pytest.mark.asyncio
async def test_details_form_post_and_errors(client, gateway):
    order = await create_order(client)
    gateway.payment_results.append(GatewayPaymentResult.model_validate({"resultCode": "RedirectShopper"}))
    attempt = (await client.post(
        "/api/payments",
        json={"orderId": order["orderId"], "amount": {"value": 100, "currency": "USD"}, "paymentMethod": CARD},
    )).json()

    resp = await client.post(f"/api/payments/details/{attempt['paymentId']}", data={"MD": "m", "PaRes": "p"})
    assert resp.status_code == 200
    assert gateway.calls_to("submit_payment_details")[0]["details"] == {"MD": "m", "PaRes": "p"}

    empty = await client.get(f"/api/payments/details/{attempt['paymentId']}")
    assert empty.status_code == 400

    missing = await client.get("/api/payments/details/unknown", params={"redirectResult": "x"})
    assert missing.status_code == 404

    bad_json = await client.post(
        f"/api/payments/details/{attempt['paymentId']}",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert bad_json.status_code == 400


@pytest.mark.asyncio
async def test_webhook_acknowledges_with_plain_text(client):
    order = await create_order(client)
    resp = await client.post(
        "/api/webhooks",
        content=notification_body(notification_item("ORDER_CLOSED", order["gatewayOrderReference"])),
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 200
    assert resp.text == "[accepted]"
    assert resp.headers["content-type"].startswith("text/plain")

    # order is terminal now
    cancel = await client.post(f"/api/orders/{order['orderId']}/cancel")
    assert cancel.status_code == 400


@pytest.mark.asyncio
async def test_webhook_rejections(client):
    forged = await client.post(
        "/api/webhooks",
        content=notification_body(notification_item("REFUND", "RF-1", signature="forged")),
    )
    assert forged.status_code == 401
    assert forged.text == "HMAC validation failed"

    malformed = await client.post("/api/webhooks", content=json.dumps({"live": "false"}))
    assert malformed.status_code == 400
    assert "notificationItems" in malformed.text


@pytest.mark.asyncio
async def test_sessions_and_payment_methods(client):
    resp = await client.post("/api/sessions", json={"amount": {"value": 500, "currency": "EUR"}, "path": "result"})
    assert resp.status_code == 201
    assert resp.json() == {"id": "CS-1", "sessionData": "session-blob"}

    methods = await client.post("/api/payment-methods", json={})
    assert methods.status_code == 200
    assert methods.json()["paymentMethods"][0]["name"] == "Cards"


@pytest.mark.asyncio
async def test_stored_payment_methods(client, uow_factory):
    missing_param = await client.get("/api/stored-payment-methods")
    assert missing_param.status_code == 400

    none_stored = await client.get("/api/stored-payment-methods", params={"shopperReference": "shopper-1"})
    assert none_stored.status_code == 404

    async with uow_factory() as uow:
        await TokenVault(uow.token_repository).record_token("shopper-1", "RDR-1", "visa", "1111", "scheme")

    resp = await client.get("/api/stored-payment-methods", params={"shopperReference": "shopper-1"})
    assert resp.status_code == 200
    methods = resp.json()["storedPaymentMethods"]
    assert methods[0]["recurringDetailReference"] == "RDR-1"
    assert methods[0]["lastFour"] == "1111"


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(client):
    resp = await client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "HTTPError"


@pytest.mark.asyncio
async def test_webhook_needs_only_hmac_key(client, uow_factory):
    order = await create_order(client)
    # real Adyen verifier, no Checkout API credentials configured
    app.dependency_overrides.pop(get_notification_verifier)
    app.dependency_overrides.pop(get_gateway)
    app.dependency_overrides[get_payment_settings] = lambda: PaymentSettings(adyen=AdyenSettings(hmac_key=HMAC_KEY))

    item = notification_item("ORDER_CLOSED", order["gatewayOrderReference"], signature=None)
    item["additionalData"]["hmacSignature"] = generate_notification_sig(
        {k: v for k, v in item.items() if k != "additionalData"}, HMAC_KEY
    ).decode("utf-8")

    resp = await client.post("/api/webhooks", content=notification_body(item))
    assert resp.status_code == 200
    assert resp.text == "[accepted]"

    async with uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_id(order["orderId"])
    assert stored.status.value == "paid"
