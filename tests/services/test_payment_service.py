import pytest

from application.dtos.payments import (
    CreateOrderRequest,
    CreatePaymentRequest,
    GatewayPaymentResult,
)
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentApplicationService, append_query_params
from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateException,
    OrderNotFoundException,
    PaymentGatewayError,
    PaymentNotFoundException,
)
from domain.order import OrderStatus
from domain.payment import PaymentStatus


CARD = {"type": "scheme", "encryptedCardNumber": "enc", "encryptedSecurityCode": "enc"}


async def open_order(uow_factory, gateway, usd, value=1000):
    return await OrderApplicationService(uow_factory, gateway).create_order(CreateOrderRequest(amount=usd(value)))


def payment_request(order_id, usd, value, **extra):
    return CreatePaymentRequest(order_id=order_id, amount=usd(value), payment_method=CARD, **extra)


@pytest.mark.asyncio
async def test_partial_payment_updates_order_snapshot(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)

    result = await service.attempt_payment(payment_request(order.order_id, usd, 400), origin="http://shop.test")

    assert result.result_code == "Authorised"
    assert result.order_status.remaining_amount.value == 600
    request = gateway.calls_to("submit_payment")[0]["request"]
    assert request["order"] == {"pspReference": order.gateway_order_reference, "orderData": order.order_data}
    assert request["authenticationData"]["threeDSRequestData"]["nativeThreeDS"] == "preferred"
    assert request["channel"] == "Web"
    assert request["origin"] == "http://shop.test"
    assert request["reference"] == f"PAYMENT-{result.payment_id}"
    assert "shopperInteraction" not in request

    async with uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_id(order.order_id)
        payment = await uow.payment_repository.get_by_id(result.payment_id)
    assert stored.status == OrderStatus.PROCESSING
    assert stored.remaining_amount.value == 600
    assert stored.current_order_data == result.order_status.order_data
    assert len(stored.order_data_history) == 2
    assert payment.status == PaymentStatus.AUTHORISED_SYNC
    assert payment.psp_reference == result.gateway_reference


@pytest.mark.asyncio
async def test_overpayment_rejected_without_mutation(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)

    with pytest.raises(DomainValidationException):
        await service.attempt_payment(payment_request(order.order_id, usd, 1001))
    with pytest.raises(DomainValidationException):
        await service.attempt_payment(
            CreatePaymentRequest(order_id=order.order_id, amount={"value": 100, "currency": "EUR"}, payment_method=CARD)
        )

    assert gateway.calls_to("submit_payment") == []
    async with uow_factory(readonly=True) as uow:
        stored = await uow.order_repository.get_by_id(order.order_id)
        payments = await uow.payment_repository.list_by_order(order.order_id)
    assert stored.remaining_amount.value == 1000
    assert stored.status == OrderStatus.OPEN
    assert payments == []


@pytest.mark.asyncio
async def test_store_payment_method_requires_shopper_reference(uow_factory, gateway, usd):
    service = PaymentApplicationService(uow_factory, gateway)
    with pytest.raises(DomainValidationException) as exc_info:
        await service.attempt_payment(payment_request("any", usd, 100, store_payment_method=True))
    assert exc_info.value.field == "shopperReference"


@pytest.mark.asyncio
async def test_unknown_order(uow_factory, gateway, usd):
    with pytest.raises(OrderNotFoundException):
        await PaymentApplicationService(uow_factory, gateway).attempt_payment(payment_request("nope", usd, 100))


@pytest.mark.asyncio
async def test_payment_on_cancelling_order_is_invalid_state(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    await OrderApplicationService(uow_factory, gateway).cancel_order(order.order_id)
    with pytest.raises(InvalidStateException):
        await PaymentApplicationService(uow_factory, gateway).attempt_payment(payment_request(order.order_id, usd, 100))


@pytest.mark.asyncio
async def test_gateway_failure_creates_no_payment(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    gateway.errors["submit_payment"] = PaymentGatewayError(
        "Refused by acquirer", status_code=422, psp_reference="ERRPSP", details={"errorCode": "101"}
    )
    with pytest.raises(PaymentGatewayError) as exc_info:
        await PaymentApplicationService(uow_factory, gateway).attempt_payment(payment_request(order.order_id, usd, 100))
    assert exc_info.value.psp_reference == "ERRPSP"

    async with uow_factory(readonly=True) as uow:
        assert await uow.payment_repository.list_by_order(order.order_id) == []
        stored = await uow.order_repository.get_by_id(order.order_id)
    assert stored.status == OrderStatus.OPEN


@pytest.mark.asyncio
async def test_tokenization_flags_and_token_dedup(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)
    for psp in ("PSP-A", "PSP-B"):
        gateway.payment_results.append(GatewayPaymentResult.model_validate({
            "pspReference": psp,
            "resultCode": "Authorised",
            "additionalData": {
                "recurringDetailReference": "RDR-1",
                "paymentMethodVariant": "visa",
                "cardSummary": "1111",
                "expiryDate": "3/2030",
            },
        }))

    await service.attempt_payment(
        payment_request(order.order_id, usd, 100, store_payment_method=True, shopper_reference="shopper-1")
    )
    await service.attempt_payment(
        payment_request(order.order_id, usd, 100, store_payment_method=True, shopper_reference="shopper-1")
    )

    request = gateway.calls_to("submit_payment")[0]["request"]
    assert request["shopperReference"] == "shopper-1"
    assert request["shopperInteraction"] == "Ecommerce"
    assert request["recurringProcessingModel"] == "CardOnFile"

    async with uow_factory(readonly=True) as uow:
        tokens = await uow.token_repository.list_by_shopper("shopper-1")
    assert len(tokens) == 1
    assert tokens[0].brand == "visa"
    assert tokens[0].summary == "1111"
    assert (tokens[0].expiry_month, tokens[0].expiry_year) == ("03", "2030")


@pytest.mark.asyncio
async def test_stored_card_payment_sets_interaction_flags(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    req = CreatePaymentRequest(
        order_id=order.order_id,
        amount=usd(100),
        payment_method={"type": "scheme", "storedPaymentMethodId": "RDR-1"},
        shopper_reference="shopper-1",
    )
    await PaymentApplicationService(uow_factory, gateway).attempt_payment(req)

    request = gateway.calls_to("submit_payment")[0]["request"]
    assert request["shopperReference"] == "shopper-1"
    assert request["recurringProcessingModel"] == "CardOnFile"


@pytest.mark.asyncio
async def test_challenge_then_details_round_trip(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)
    gateway.payment_results.append(GatewayPaymentResult.model_validate({
        "resultCode": "ChallengeShopper",
        "action": {"type": "threeDS2", "paymentData": "pd-123", "token": "tok"},
    }))
    attempt = await service.attempt_payment(payment_request(order.order_id, usd, 1000))
    assert attempt.result_code == "ChallengeShopper"
    assert attempt.action["type"] == "threeDS2"
    assert attempt.gateway_reference is None

    gateway.details_results.append(GatewayPaymentResult.model_validate({
        "pspReference": "PSP-3DS",
        "resultCode": "Authorised",
    }))
    result = await service.submit_payment_details(attempt.payment_id, {"threeDSResult": "abc"})

    call = gateway.calls_to("submit_payment_details")[0]
    assert call == {"details": {"threeDSResult": "abc"}, "payment_data": "pd-123"}
    assert result.result_code == "Authorised"
    assert result.redirect_url is None
    async with uow_factory(readonly=True) as uow:
        payment = await uow.payment_repository.get_by_id(attempt.payment_id)
    assert payment.action is None
    assert payment.psp_reference == "PSP-3DS"
    assert payment.status == PaymentStatus.AUTHORISED_SYNC


@pytest.mark.asyncio
async def test_details_redirects_to_client_return_url(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)
    gateway.payment_results.append(GatewayPaymentResult.model_validate({
        "resultCode": "RedirectShopper",
        "action": {"type": "redirect", "url": "https://issuer.test"},
    }))
    attempt = await service.attempt_payment(
        payment_request(order.order_id, usd, 500, return_url="https://shop.test/result?cart=9")
    )
    gateway.details_results.append(GatewayPaymentResult.model_validate({
        "pspReference": "PSP-R", "resultCode": "Refused", "refusalReason": "Not enough balance",
    }))

    result = await service.submit_payment_details(attempt.payment_id, {"redirectResult": "xyz"})

    assert result.redirect_url.startswith("https://shop.test/result?cart=9&resultCode=Refused")
    assert "pspReference=PSP-R" in result.redirect_url
    assert "refusalReason=Not+enough+balance" in result.redirect_url


@pytest.mark.asyncio
async def test_details_gateway_error_redirects_with_error(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)
    gateway.payment_results.append(GatewayPaymentResult.model_validate({"resultCode": "RedirectShopper"}))
    attempt = await service.attempt_payment(payment_request(order.order_id, usd, 500, return_url="https://shop.test/r"))
    gateway.errors["submit_payment_details"] = PaymentGatewayError("Invalid details", status_code=422)

    result = await service.submit_payment_details(attempt.payment_id, {"redirectResult": "xyz"})

    assert result.result_code == "Error"
    assert result.redirect_url == "https://shop.test/r?resultCode=Error&message=Invalid+details"


@pytest.mark.asyncio
async def test_details_gateway_error_without_return_url_raises(uow_factory, gateway, usd):
    order = await open_order(uow_factory, gateway, usd)
    service = PaymentApplicationService(uow_factory, gateway)
    gateway.payment_results.append(GatewayPaymentResult.model_validate({"resultCode": "ChallengeShopper"}))
    attempt = await service.attempt_payment(payment_request(order.order_id, usd, 500))
    gateway.errors["submit_payment_details"] = PaymentGatewayError("Invalid details", status_code=422)

    with pytest.raises(PaymentGatewayError):
        await service.submit_payment_details(attempt.payment_id, {"redirectResult": "xyz"})


@pytest.mark.asyncio
async def test_details_validation(uow_factory, gateway):
    service = PaymentApplicationService(uow_factory, gateway)
    with pytest.raises(DomainValidationException):
        await service.submit_payment_details("p-1", {})
    with pytest.raises(PaymentNotFoundException):
        await service.submit_payment_details("missing", {"redirectResult": "x"})


def test_append_query_params_skips_empty_values():
    url = append_query_params("https://shop.test/done", {"resultCode": "Authorised", "refusalReason": None})
    assert url == "https://shop.test/done?resultCode=Authorised"
