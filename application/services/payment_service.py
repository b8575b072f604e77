"""
Application service orchestrating payment attempts against an order.

This class depends only on the application CheckoutGateway port, the unit of
work abstraction and DTOs. Gateway implementations are provided by
infrastructure and injected from the composition root (API), keeping
dependencies one-way.

Synchronous result codes written here are provisional; the webhook
reconciliation service owns the terminal payment and order statuses.
"""
from __future__ import annotations

import uuid
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from application.dtos.payments import (
    AmountDTO,
    CreatePaymentRequest,
    GatewayOrderSnapshot,
    GatewayPaymentResult,
    OrderStatusSnapshot,
    PaymentAttemptResponse,
    PaymentDetailsResponse,
)
from application.ports.payment_gateway import CheckoutGateway
from application.utils.local_write import local_write_guard
from application.utils.tokens import extract_token_fields
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    OrderNotFoundException,
    PaymentGatewayError,
    PaymentNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order import Order
from domain.payment import Payment, PaymentStatus, merchant_reference_for
from domain.token import TokenVault
from shared.codes.payment_codes import CHALLENGE_RESULT_CODES, TOKENIZABLE_RESULT_CODES


logger = get_logger(__name__)


def append_query_params(url: str, params: dict[str, Optional[str]]) -> str:
    """Append non-empty params to url, keeping any query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items() if v)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def _apply_order_snapshot(order: Order, snapshot: Optional[GatewayOrderSnapshot]) -> bool:
    if snapshot is None:
        return False
    remaining = snapshot.remaining_amount.to_domain() if snapshot.remaining_amount else None
    return order.apply_gateway_update(snapshot.order_data, remaining)


def _order_status_snapshot(order: Order) -> OrderStatusSnapshot:
    return OrderStatusSnapshot(
        remaining_amount=AmountDTO.from_domain(order.remaining_amount),
        order_data=order.current_order_data,
    )


class PaymentApplicationService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], gateway: CheckoutGateway) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway

    # ------------------------------------------------------------------
    # Attempt
    # ------------------------------------------------------------------

    @staticmethod
    def build_payment_request(
        order: Order,
        req: CreatePaymentRequest,
        *,
        reference: str,
        origin: Optional[str] = None,
    ) -> dict[str, Any]:
        """Gateway /payments body (merchantAccount is added by the client)."""
        payload: dict[str, Any] = {
            "amount": req.amount.to_domain().to_dict(),
            "reference": reference,
            "paymentMethod": req.payment_method,
            "order": {
                "pspReference": order.gateway_order_reference,
                "orderData": order.current_order_data,
            },
            "authenticationData": {
                "threeDSRequestData": {"nativeThreeDS": "preferred"},
            },
            "channel": "Web",
        }
        if req.browser_info:
            payload["browserInfo"] = req.browser_info
        if req.return_url:
            payload["returnUrl"] = req.return_url
        if origin:
            payload["origin"] = origin

        if req.store_payment_method:
            payload["shopperReference"] = req.shopper_reference
            payload["shopperInteraction"] = "Ecommerce"
            payload["recurringProcessingModel"] = "CardOnFile"
            payload["storePaymentMethod"] = True

        method = req.payment_method
        if method.get("type") == "scheme" and method.get("storedPaymentMethodId"):
            payload["shopperInteraction"] = "Ecommerce"
            payload["recurringProcessingModel"] = "CardOnFile"
            if req.shopper_reference:
                payload["shopperReference"] = req.shopper_reference
        return payload

    async def attempt_payment(
        self,
        req: CreatePaymentRequest,
        *,
        origin: Optional[str] = None,
    ) -> PaymentAttemptResponse:
        if req.store_payment_method and not req.shopper_reference:
            raise DomainValidationException(
                "shopperReference is required when storePaymentMethod is true.",
                field="shopperReference",
            )
        amount = req.amount.to_domain()

        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(req.order_id)
            if order is None:
                raise OrderNotFoundException(req.order_id)
            order.ensure_accepts_payment(amount)

        payment_id = str(uuid.uuid4())
        reference = merchant_reference_for(payment_id)
        payload = self.build_payment_request(order, req, reference=reference, origin=origin)
        method_type = req.payment_method.get("type")

        logger.info(
            "payment_attempt_request",
            payment_id=payment_id,
            order_id=order.id,
            merchant_reference=reference,
            amount=amount.to_dict(),
            payment_method_type=method_type,
            store_payment_method=req.store_payment_method,
        )
        result = await self.gateway.submit_payment(payload, idempotency_key=payment_id)
        logger.info(
            "payment_attempt_response",
            payment_id=payment_id,
            psp_reference=result.psp_reference,
            result_code=result.result_code,
        )
        if result.result_code in CHALLENGE_RESULT_CODES:
            logger.info("payment_requires_action", payment_id=payment_id, result_code=result.result_code)

        payment = Payment(
            id=payment_id,
            order_id=order.id,
            merchant_reference=reference,
            amount=amount,
            payment_method_type=method_type,
            status=PaymentStatus.from_result_code(result.result_code, PaymentStatus.PENDING_ACTION),
            psp_reference=result.psp_reference,
            result_code=result.result_code,
            action=result.action,
            refusal_reason=result.refusal_reason,
            shopper_reference=req.shopper_reference if req.store_payment_method else None,
            client_return_url=req.return_url,
        )

        async with local_write_guard(
            "payment_local_write_failed",
            payment_id=payment_id,
            order_id=order.id,
            psp_reference=result.psp_reference,
            result_code=result.result_code,
            attempted="create_payment",
        ):
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.create(payment)
                order = await uow.order_repository.get_by_id(order.id, for_update=True)
                if order is None:
                    raise OrderNotFoundException(payment.order_id)
                changed = _apply_order_snapshot(order, result.order)
                changed = order.mark_processing() or changed
                if changed:
                    order = await uow.order_repository.update(order)
                await self._maybe_record_token(uow, payment, result)

        return PaymentAttemptResponse(
            payment_id=payment.id,
            order_id=order.id,
            gateway_reference=result.psp_reference,
            result_code=result.result_code,
            action=result.action,
            refusal_reason=result.refusal_reason,
            order_status=_order_status_snapshot(order),
            message="Payment initiated. Further action may be required.",
        )

    # ------------------------------------------------------------------
    # Details (challenge / redirect round-trip)
    # ------------------------------------------------------------------

    async def submit_payment_details(self, payment_id: str, details: dict[str, Any]) -> PaymentDetailsResponse:
        if not details:
            raise DomainValidationException(
                "Missing paymentId or details from redirect.",
                field="details",
            )

        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            if payment is None:
                raise PaymentNotFoundException(payment_id)
            order = await uow.order_repository.get_by_id(payment.order_id)
            if order is None:
                logger.error("payment_order_missing", payment_id=payment.id, order_id=payment.order_id)
                raise OrderNotFoundException(payment.order_id)

        logger.info(
            "payment_details_request",
            payment_id=payment.id,
            psp_reference=payment.psp_reference,
            has_payment_data=payment.challenge_payment_data is not None,
        )
        try:
            result = await self.gateway.submit_payment_details(
                details=details,
                payment_data=payment.challenge_payment_data,
            )
        except PaymentGatewayError as exc:
            if not payment.client_return_url:
                raise
            logger.warning(
                "payment_details_gateway_error_redirect",
                payment_id=payment.id,
                status_code=exc.status_code,
                error=exc.message,
            )
            return PaymentDetailsResponse(
                payment_id=payment.id,
                order_id=order.id,
                gateway_reference=payment.psp_reference,
                result_code="Error",
                order_status=_order_status_snapshot(order),
                message=exc.message,
                redirect_url=append_query_params(
                    payment.client_return_url,
                    {"resultCode": "Error", "message": exc.message},
                ),
            )

        logger.info(
            "payment_details_response",
            payment_id=payment.id,
            psp_reference=result.psp_reference,
            result_code=result.result_code,
        )

        async with local_write_guard(
            "payment_details_local_write_failed",
            payment_id=payment.id,
            order_id=order.id,
            psp_reference=result.psp_reference or payment.psp_reference,
            result_code=result.result_code,
            attempted="apply_details_result",
        ):
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.get_by_id(payment_id, for_update=True)
                if payment is None:
                    raise PaymentNotFoundException(payment_id)
                if not payment.apply_synchronous_result(
                    result_code=result.result_code,
                    psp_reference=result.psp_reference,
                    refusal_reason=result.refusal_reason,
                ):
                    logger.info(
                        "payment_details_after_terminal",
                        payment_id=payment.id,
                        status=payment.status.value,
                        result_code=result.result_code,
                    )
                payment = await uow.payment_repository.update(payment)

                order = await uow.order_repository.get_by_id(payment.order_id, for_update=True)
                if order is None:
                    raise OrderNotFoundException(payment.order_id)
                if _apply_order_snapshot(order, result.order):
                    order = await uow.order_repository.update(order)
                await self._maybe_record_token(uow, payment, result)

        response = PaymentDetailsResponse(
            payment_id=payment.id,
            order_id=order.id,
            gateway_reference=result.psp_reference or payment.psp_reference,
            result_code=result.result_code,
            refusal_reason=result.refusal_reason,
            order_status=_order_status_snapshot(order),
            message="Payment details submitted. Final status will be confirmed via webhook.",
        )
        if payment.client_return_url:
            response.redirect_url = append_query_params(
                payment.client_return_url,
                {
                    "resultCode": result.result_code,
                    "pspReference": response.gateway_reference,
                    "refusalReason": result.refusal_reason,
                },
            )
        return response

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _maybe_record_token(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        result: GatewayPaymentResult,
    ) -> None:
        if not payment.shopper_reference or result.result_code not in TOKENIZABLE_RESULT_CODES:
            return
        fields = extract_token_fields(result.additional_data, fallback_brand=payment.payment_method_type)
        if not fields.recurring_detail_reference:
            return
        token, created = await TokenVault(uow.token_repository).record_token(
            payment.shopper_reference,
            fields.recurring_detail_reference,
            fields.brand,
            fields.summary,
            payment.payment_method_type,
            expiry_month=fields.expiry_month,
            expiry_year=fields.expiry_year,
        )
        logger.info(
            "token_recorded" if created else "token_already_stored",
            payment_id=payment.id,
            token_id=token.id,
            shopper_reference=payment.shopper_reference,
        )
