"""
API依赖项 - 组合根：为应用服务注入工作单元工厂、网关与配置
"""
from typing import Callable

from fastapi import Depends, Request

from application.ports.payment_gateway import CheckoutGateway, NotificationVerifier
from application.services.checkout_service import CheckoutApplicationService, StoredPaymentMethodsService
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentApplicationService
from application.services.webhook_service import WebhookReconciliationService
from core.config import settings
from core.settings import PaymentSettings, payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_notification_verifier, get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_payment_settings() -> PaymentSettings:
    return payment_settings


async def get_gateway(
    request: Request,
    cfg: PaymentSettings = Depends(get_payment_settings),
) -> CheckoutGateway:
    """进程内复用同一个网关客户端（连接池），关闭由 lifespan 负责"""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        gateway = get_payment_gateway(cfg)
        request.app.state.payment_gateway = gateway
    return gateway


async def get_order_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateway: CheckoutGateway = Depends(get_gateway),
) -> OrderApplicationService:
    return OrderApplicationService(uow_factory=uow_factory, gateway=gateway)


async def get_payment_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    gateway: CheckoutGateway = Depends(get_gateway),
) -> PaymentApplicationService:
    return PaymentApplicationService(uow_factory=uow_factory, gateway=gateway)


async def get_webhook_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    verifier: NotificationVerifier = Depends(get_notification_verifier),
    cfg: PaymentSettings = Depends(get_payment_settings),
) -> WebhookReconciliationService:
    return WebhookReconciliationService(
        uow_factory=uow_factory,
        verifier=verifier,
        adyen=cfg.adyen,
        webhook=cfg.webhook,
    )


async def get_checkout_service(
    gateway: CheckoutGateway = Depends(get_gateway),
) -> CheckoutApplicationService:
    return CheckoutApplicationService(gateway=gateway, base_url=settings.BASE_URL)


async def get_stored_methods_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> StoredPaymentMethodsService:
    return StoredPaymentMethodsService(uow_factory=uow_factory)
