"""
Webhook 对账服务（application/services）

网关异步通知的唯一消费者：解析批次、逐条校验 HMAC、按 eventCode 分发状态迁移。
每条通知使用独立事务，单条失败只记录日志，不中断批次；
批次解析与认证通过后总是返回固定确认串，否则网关会无限重试。
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from application.ports.payment_gateway import NotificationVerifier
from application.utils.tokens import extract_token_fields
from core.logging_config import get_logger
from core.settings import AdyenSettings, WebhookSettings
from domain.common.exceptions import MalformedNotificationError, WebhookAuthenticationError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.token import TokenVault


logger = get_logger(__name__)


class ItemOutcome(str, Enum):
    PROCESSED = "processed"
    WARNED = "warned"
    FAILED = "failed"


@dataclass
class WebhookItemResult:
    index: int
    event_code: Optional[str]
    psp_reference: Optional[str]
    outcome: ItemOutcome
    detail: Optional[str] = None


@dataclass
class WebhookBatchResult:
    acknowledgement: str
    live: Optional[str] = None
    items: list[WebhookItemResult] = field(default_factory=list)

    def count(self, outcome: ItemOutcome) -> int:
        return sum(1 for r in self.items if r.outcome == outcome)


def parse_notification_batch(raw_body: bytes) -> tuple[Any, list[Optional[dict[str, Any]]]]:
    """解析批次；结构缺失抛 MalformedNotificationError，单条畸形项以 None 占位"""
    try:
        payload = json.loads(raw_body or b"")
    except (ValueError, UnicodeDecodeError) as exc:
        raise MalformedNotificationError("Invalid webhook format: body is not valid JSON.") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("notificationItems"), list):
        raise MalformedNotificationError()

    items: list[Optional[dict[str, Any]]] = []
    for wrapper in payload["notificationItems"]:
        item = wrapper.get("NotificationRequestItem") if isinstance(wrapper, dict) else None
        items.append(item if isinstance(item, dict) else None)
    return payload.get("live"), items


def is_success(value: Any) -> bool:
    """success 字段可能是字符串 "true" 或布尔值"""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class WebhookReconciliationService:
    """Webhook 对账引擎"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        verifier: NotificationVerifier,
        *,
        adyen: AdyenSettings,
        webhook: WebhookSettings,
    ) -> None:
        self._uow_factory = uow_factory
        self._verifier = verifier
        self._adyen = adyen
        self._webhook = webhook
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[ItemOutcome]]] = {
            "ORDER_OPENED": self._on_order_opened,
            "ORDER_CLOSED": self._on_order_closed,
            "AUTHORISATION": self._on_authorisation,
            "CANCELLATION": self._on_cancellation,
            "REFUND": self._on_refund,
        }

    async def handle_notification(self, raw_body: bytes) -> WebhookBatchResult:
        live, items = parse_notification_batch(raw_body)
        logger.info("webhook_batch_received", live=live, item_count=len(items))

        self.verify_batch(items)

        result = WebhookBatchResult(acknowledgement=self._webhook.acknowledgement, live=live)
        for index, item in enumerate(items):
            result.items.append(await self._process_item(index, item))

        logger.info(
            "webhook_batch_processed",
            item_count=len(items),
            processed=result.count(ItemOutcome.PROCESSED),
            warned=result.count(ItemOutcome.WARNED),
            failed=result.count(ItemOutcome.FAILED),
        )
        return result

    def verify_batch(self, items: list[Optional[dict[str, Any]]]) -> None:
        """逐条校验签名，首个无效签名即整体拒绝"""
        skipped = 0
        for index, item in enumerate(items):
            if item is None:
                continue
            hmac_key = self._adyen.hmac_key_for(item.get("merchantAccountCode"))
            if not hmac_key:
                if not self._webhook.allow_unsigned:
                    logger.error(
                        "webhook_hmac_key_missing",
                        merchant_account_code=item.get("merchantAccountCode"),
                        index=index,
                    )
                    raise WebhookAuthenticationError(
                        "HMAC validation failed",
                        details={"reason": "hmac key not configured"},
                    )
                skipped += 1
                continue
            if not self._verifier.verify_notification(item, hmac_key):
                logger.warning(
                    "webhook_hmac_invalid",
                    index=index,
                    event_code=item.get("eventCode"),
                    psp_reference=item.get("pspReference"),
                )
                raise WebhookAuthenticationError(details={"psp_reference": item.get("pspReference")})
        if skipped:
            logger.warning(
                "webhook_hmac_verification_skipped",
                message="No HMAC key configured; accepting unsigned notifications (allow_unsigned=true)",
                item_count=skipped,
            )

    async def _process_item(self, index: int, item: Optional[dict[str, Any]]) -> WebhookItemResult:
        if item is None:
            logger.warning("webhook_item_malformed", index=index)
            return WebhookItemResult(index, None, None, ItemOutcome.FAILED, "missing NotificationRequestItem")

        event_code = item.get("eventCode")
        psp_reference = item.get("pspReference")
        if not isinstance(event_code, str):
            logger.warning("webhook_item_malformed", index=index, reason="eventCode is not a string")
            return WebhookItemResult(index, None, None, ItemOutcome.FAILED, "invalid eventCode")
        handler = self._handlers.get(event_code)
        if handler is None:
            logger.info("webhook_event_ignored", event_code=event_code, psp_reference=psp_reference)
            return WebhookItemResult(index, event_code, psp_reference, ItemOutcome.PROCESSED, "ignored")

        try:
            outcome = await handler(item)
        except Exception as exc:
            logger.error(
                "webhook_item_failed",
                index=index,
                event_code=event_code,
                psp_reference=psp_reference,
                merchant_reference=item.get("merchantReference"),
                error=str(exc),
                exc_info=True,
            )
            return WebhookItemResult(index, event_code, psp_reference, ItemOutcome.FAILED, str(exc))

        logger.info(
            "webhook_item_processed",
            index=index,
            event_code=event_code,
            psp_reference=psp_reference,
            outcome=outcome.value,
        )
        return WebhookItemResult(index, event_code, psp_reference, outcome)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_order_opened(self, item: dict[str, Any]) -> ItemOutcome:
        psp_reference = item.get("pspReference")
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_gateway_reference(psp_reference) if psp_reference else None
            if order is None:
                logger.warning("webhook_unknown_reference", event_code="ORDER_OPENED", psp_reference=psp_reference)
                return ItemOutcome.WARNED
            if order.confirm_open():
                # 状态不变，仅刷新 updated_at 留下确认痕迹
                await uow.order_repository.update(order)
                logger.info("order_open_confirmed", order_id=order.id)
            else:
                logger.info("webhook_order_opened_noop", order_id=order.id, status=order.status.value)
        return ItemOutcome.PROCESSED

    async def _on_order_closed(self, item: dict[str, Any]) -> ItemOutcome:
        psp_reference = item.get("pspReference")
        success = is_success(item.get("success"))
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_gateway_reference(psp_reference) if psp_reference else None
            if order is None:
                logger.warning("webhook_unknown_reference", event_code="ORDER_CLOSED", psp_reference=psp_reference)
                return ItemOutcome.WARNED
            if order.close(success):
                await uow.order_repository.update(order)
                logger.info("order_closed", order_id=order.id, status=order.status.value)
            else:
                logger.info(
                    "webhook_order_close_ignored",
                    order_id=order.id,
                    status=order.status.value,
                    success=success,
                )
        return ItemOutcome.PROCESSED

    async def _on_authorisation(self, item: dict[str, Any]) -> ItemOutcome:
        psp_reference = item.get("pspReference")
        merchant_reference = item.get("merchantReference")
        success = is_success(item.get("success"))
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_psp_or_merchant_reference(psp_reference, merchant_reference)
            if payment is None:
                logger.warning(
                    "webhook_unknown_reference",
                    event_code="AUTHORISATION",
                    psp_reference=psp_reference,
                    merchant_reference=merchant_reference,
                )
                return ItemOutcome.WARNED

            if not success:
                payment.mark_refused(psp_reference, item.get("reason"))
                await uow.payment_repository.update(payment)
                logger.info("payment_refused", payment_id=payment.id, reason=item.get("reason"))
                return ItemOutcome.PROCESSED

            payment.mark_authorised(psp_reference)
            payment = await uow.payment_repository.update(payment)

            order = await uow.order_repository.get_by_id(payment.order_id, for_update=True)
            if order is None:
                logger.warning("webhook_payment_order_missing", payment_id=payment.id, order_id=payment.order_id)
                return ItemOutcome.WARNED
            if order.is_terminal():
                logger.info("webhook_authorisation_on_terminal_order", order_id=order.id, status=order.status.value)
            else:
                order.record_authorised_payment(payment.psp_reference)
                await uow.order_repository.update(order)

            await self._record_token_from_notification(uow, item, payment.payment_method_type)
            logger.info("payment_authorised", payment_id=payment.id, order_id=order.id, psp_reference=payment.psp_reference)
        return ItemOutcome.PROCESSED

    async def _on_cancellation(self, item: dict[str, Any]) -> ItemOutcome:
        psp_reference = item.get("pspReference")
        original_reference = item.get("originalReference")
        async with self._uow_factory() as uow:
            payment = None
            for ref in (psp_reference, original_reference):
                if ref:
                    payment = await uow.payment_repository.get_by_psp_reference(ref)
                    if payment is not None:
                        break
            if payment is None:
                logger.warning(
                    "webhook_unknown_reference",
                    event_code="CANCELLATION",
                    psp_reference=psp_reference,
                    original_reference=original_reference,
                )
                return ItemOutcome.WARNED
            if not is_success(item.get("success")):
                logger.warning("webhook_cancellation_failed", payment_id=payment.id, reason=item.get("reason"))
                return ItemOutcome.WARNED
            # TODO: remainingAmount is not restored on cancellation until the order-balance rule is agreed
            payment.mark_cancelled(item.get("reason"))
            await uow.payment_repository.update(payment)
            logger.info("payment_cancelled", payment_id=payment.id, reason=item.get("reason"))
        return ItemOutcome.PROCESSED

    async def _on_refund(self, item: dict[str, Any]) -> ItemOutcome:
        logger.info(
            "webhook_refund_received",
            psp_reference=item.get("pspReference"),
            original_reference=item.get("originalReference"),
            merchant_reference=item.get("merchantReference"),
            amount=item.get("amount"),
            success=is_success(item.get("success")),
            reason=item.get("reason"),
        )
        return ItemOutcome.PROCESSED

    async def _record_token_from_notification(
        self,
        uow: AbstractUnitOfWork,
        item: dict[str, Any],
        payment_method_type: Optional[str],
    ) -> None:
        fields = extract_token_fields(item.get("additionalData"), fallback_brand=item.get("paymentMethod") or payment_method_type)
        if not fields.recurring_detail_reference or not fields.shopper_reference:
            return
        token, created = await TokenVault(uow.token_repository).record_token(
            fields.shopper_reference,
            fields.recurring_detail_reference,
            fields.brand,
            fields.summary,
            payment_method_type or item.get("paymentMethod"),
            expiry_month=fields.expiry_month,
            expiry_year=fields.expiry_year,
        )
        logger.info(
            "token_recorded" if created else "token_already_stored",
            token_id=token.id,
            shopper_reference=fields.shopper_reference,
            source="webhook",
        )
