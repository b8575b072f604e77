"""
Drop-in 前端辅助路由：sessions、payment methods、stored payment methods
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_checkout_service, get_stored_methods_service
from application.dtos.payments import (
    CreateSessionRequest,
    PaymentMethodsRequest,
    SessionResponse,
    StoredPaymentMethodsResponse,
)
from application.services.checkout_service import CheckoutApplicationService, StoredPaymentMethodsService


router = APIRouter(tags=["Checkout"])


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create checkout session",
)
async def create_session(
    payload: CreateSessionRequest,
    service: CheckoutApplicationService = Depends(get_checkout_service),
):
    return await service.create_session(payload)


@router.post("/payment-methods", summary="List available payment methods")
async def list_payment_methods(
    payload: PaymentMethodsRequest,
    service: CheckoutApplicationService = Depends(get_checkout_service),
) -> dict[str, Any]:
    return await service.list_payment_methods(payload)


@router.get(
    "/stored-payment-methods",
    response_model=StoredPaymentMethodsResponse,
    summary="List a shopper's stored payment methods",
)
async def list_stored_payment_methods(
    shopper_reference: Optional[str] = Query(default=None, alias="shopperReference"),
    service: StoredPaymentMethodsService = Depends(get_stored_methods_service),
):
    return await service.list_stored_payment_methods(shopper_reference or "")
