"""
Checkout helpers for the drop-in front end: sessions, available payment
methods and the shopper's stored payment methods.
"""
from __future__ import annotations

import uuid
from typing import Any, Callable

from application.dtos.payments import (
    CreateSessionRequest,
    PaymentMethodsRequest,
    SessionResponse,
    StoredPaymentMethodDTO,
    StoredPaymentMethodsResponse,
)
from application.ports.payment_gateway import CheckoutGateway
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order import merchant_reference_for
from domain.token import StoredToken, TokenVault


logger = get_logger(__name__)


def _to_stored_method(token: StoredToken) -> StoredPaymentMethodDTO:
    summary = token.summary if token.summary and token.summary != "N/A" else None
    return StoredPaymentMethodDTO(
        id=token.id,
        recurring_detail_reference=token.recurring_detail_reference,
        brand=token.brand,
        name=token.brand,
        last_four=summary,
        expiry_month=token.expiry_month,
        expiry_year=token.expiry_year,
        payment_method_type=token.payment_method_type,
        shopper_reference=token.shopper_reference,
        created_at=token.created_at.isoformat() if token.created_at else None,
    )


class CheckoutApplicationService:
    def __init__(
        self,
        gateway: CheckoutGateway,
        *,
        base_url: str,
    ) -> None:
        self._gateway = gateway
        self._base_url = base_url.rstrip("/")

    async def create_session(self, req: CreateSessionRequest) -> SessionResponse:
        """Sessions are not persisted; the webhook reconciles by merchant reference."""
        amount = req.amount.to_domain()
        if amount.value <= 0:
            raise DomainValidationException("Amount value must be greater than 0", field="amount.value")
        session_key = str(uuid.uuid4())
        reference = merchant_reference_for(session_key)
        return_url = f"{self._base_url}/{req.path.lstrip('/')}"
        session = await self._gateway.create_session(
            amount=amount,
            reference=reference,
            return_url=return_url,
            idempotency_key=session_key,
        )
        logger.info("checkout_session_created", session_id=session.id, merchant_reference=reference)
        return SessionResponse(id=session.id, session_data=session.session_data)

    async def list_payment_methods(self, req: PaymentMethodsRequest) -> dict[str, Any]:
        amount = req.amount.to_domain() if req.amount else None
        return await self._gateway.list_payment_methods(amount=amount)


class StoredPaymentMethodsService:
    """Read-only view over the token vault."""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def list_stored_payment_methods(self, shopper_reference: str) -> StoredPaymentMethodsResponse:
        if not shopper_reference:
            raise DomainValidationException("shopperReference is required.", field="shopperReference")
        async with self._uow_factory(readonly=True) as uow:
            tokens = await TokenVault(uow.token_repository).list_tokens(shopper_reference)
        return StoredPaymentMethodsResponse(stored_payment_methods=[_to_stored_method(t) for t in tokens])
