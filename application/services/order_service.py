"""
订单应用服务（application/services）- 订单生命周期管理

创建订单与发起取消；终态（paid/cancelled）只由 webhook 对账写入。
网关调用失败时不写入任何本地状态。
"""
from __future__ import annotations

import uuid
from typing import Callable

from application.dtos.payments import (
    AmountDTO,
    CreateOrderRequest,
    OrderCancelResponse,
    OrderCreatedResponse,
)
from application.ports.payment_gateway import CheckoutGateway
from application.utils.local_write import local_write_guard
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order import Order, OrderStatus, merchant_reference_for


logger = get_logger(__name__)


class OrderApplicationService:
    """订单应用服务"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], gateway: CheckoutGateway):
        self._uow_factory = uow_factory
        self._gateway = gateway

    async def create_order(self, req: CreateOrderRequest) -> OrderCreatedResponse:
        """创建订单：网关返回的金额为准"""
        amount = req.amount.to_domain()
        if amount.value <= 0:
            raise DomainValidationException(
                "Invalid amount: value must be greater than 0 and currency is required.",
                field="amount.value",
            )

        order_id = str(uuid.uuid4())
        reference = merchant_reference_for(order_id)
        logger.info("order_create_request", order_id=order_id, merchant_reference=reference, amount=amount.to_dict())

        gateway_order = await self._gateway.create_order(
            amount=amount,
            reference=reference,
            idempotency_key=order_id,
        )

        order = Order(
            id=order_id,
            gateway_order_reference=gateway_order.psp_reference,
            merchant_reference=reference,
            status=OrderStatus.OPEN,
            total_amount=gateway_order.amount.to_domain(),
            remaining_amount=gateway_order.remaining_amount.to_domain(),
            order_data_history=[gateway_order.order_data] if gateway_order.order_data else [],
            partial_payment_psp_references=[],
            expires_at=gateway_order.expires_at,
        )

        async with local_write_guard(
            "order_local_write_failed",
            order_id=order_id,
            gateway_order_reference=gateway_order.psp_reference,
            attempted="create_order",
        ):
            async with self._uow_factory() as uow:
                order = await uow.order_repository.create(order)

        logger.info(
            "order_created",
            order_id=order.id,
            gateway_order_reference=order.gateway_order_reference,
            total_amount=order.total_amount.to_dict(),
        )
        return OrderCreatedResponse(
            order_id=order.id,
            gateway_order_reference=order.gateway_order_reference,
            merchant_reference=order.merchant_reference,
            status=order.status.value,
            total_amount=AmountDTO.from_domain(order.total_amount),
            remaining_amount=AmountDTO.from_domain(order.remaining_amount),
            order_data=order.current_order_data,
            expires_at=order.expires_at,
        )

    async def cancel_order(self, order_id: str) -> OrderCancelResponse:
        """请求取消订单；本地只推进到 cancelling"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            order.ensure_cancellable()

        logger.info(
            "order_cancel_request",
            order_id=order.id,
            gateway_order_reference=order.gateway_order_reference,
        )
        cancellation = await self._gateway.cancel_order(
            order_psp_reference=order.gateway_order_reference,
            order_data=order.current_order_data,
        )

        async with local_write_guard(
            "order_cancel_local_write_failed",
            order_id=order.id,
            gateway_order_reference=order.gateway_order_reference,
            cancel_request_reference=cancellation.psp_reference,
            attempted="status=cancelling",
        ):
            async with self._uow_factory() as uow:
                order = await uow.order_repository.get_by_id(order_id, for_update=True)
                if order is None:
                    raise OrderNotFoundException(order_id)
                if order.is_terminal():
                    # webhook 已在网关调用期间写入终态
                    logger.warning("order_cancel_after_terminal", order_id=order.id, status=order.status.value)
                else:
                    order.mark_cancelling()
                    order = await uow.order_repository.update(order)

        logger.info(
            "order_cancel_requested",
            order_id=order.id,
            cancel_request_reference=cancellation.psp_reference,
            result_code=cancellation.result_code,
        )
        return OrderCancelResponse(
            order_id=order.id,
            cancel_request_reference=cancellation.psp_reference,
            status=order.status.value,
            message="Order cancellation requested. Final status will be confirmed via webhook.",
        )
