"""
Webhook 路由：接收网关通知批次

需要原始请求体做签名校验；响应为纯文本确认串。
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from api.dependencies import get_webhook_service
from application.services.webhook_service import WebhookReconciliationService
from core.logging_config import get_logger
from domain.common.exceptions import MalformedNotificationError, WebhookAuthenticationError


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("", response_class=PlainTextResponse, summary="Gateway notifications")
async def receive_notifications(
    request: Request,
    service: WebhookReconciliationService = Depends(get_webhook_service),
):
    raw_body = await request.body()
    try:
        result = await service.handle_notification(raw_body)
    except WebhookAuthenticationError as exc:
        logger.warning("webhook_rejected", reason=exc.message, status_code=401)
        return PlainTextResponse(exc.message, status_code=401)
    except MalformedNotificationError as exc:
        logger.warning("webhook_rejected", reason=exc.message, status_code=400)
        return PlainTextResponse(exc.message, status_code=400)
    return PlainTextResponse(result.acknowledgement)
