"""
订单路由 - 创建与取消
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import get_order_service
from application.dtos.payments import CreateOrderRequest, OrderCancelResponse, OrderCreatedResponse
from application.services.order_service import OrderApplicationService


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
)
async def create_order(
    payload: CreateOrderRequest,
    service: OrderApplicationService = Depends(get_order_service),
):
    return await service.create_order(payload)


@router.post("/{order_id}/cancel", response_model=OrderCancelResponse, summary="Cancel order")
async def cancel_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    return await service.cancel_order(order_id)
