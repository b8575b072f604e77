"""领域层业务异常定义，供领域、应用与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Any, Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    # Explicit HTTP status; when None the handler maps from `code`
    http_status: Optional[int] = None

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    http_status = 400

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class ResourceNotFoundException(BusinessException):
    http_status = 404

    def __init__(self, message: str, *, error_type: str = "NotFound", details: dict | None = None):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=message,
            error_type=error_type,
            details=details,
        )


class OrderNotFoundException(ResourceNotFoundException):
    def __init__(self, order_id: str):
        super().__init__(
            "Order not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class PaymentNotFoundException(ResourceNotFoundException):
    def __init__(self, payment_id: str):
        super().__init__(
            "Payment attempt not found",
            error_type="PaymentNotFound",
            details={"payment_id": payment_id},
        )


class StoredTokensNotFoundException(ResourceNotFoundException):
    """Empty-result signal for a shopper without stored payment methods."""

    def __init__(self, shopper_reference: str):
        super().__init__(
            "No stored payment methods found for this shopper",
            error_type="StoredPaymentMethodsNotFound",
            details={"shopper_reference": shopper_reference},
        )


class InvalidStateException(BusinessException):
    http_status = 400

    def __init__(self, message: str, *, status: str, details: dict | None = None):
        full_details = {"status": status}
        if details:
            full_details.update(details)
        super().__init__(
            code=BusinessCode.INVALID_STATE,
            message=message,
            error_type="InvalidState",
            details=full_details,
            field="status",
        )


class PaymentGatewayError(BusinessException):
    """Remote gateway call failed; carries upstream diagnostics."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Any = None,
        psp_reference: str | None = None,
        error_code: str | None = None,
    ):
        self.status_code = status_code or 500
        self.psp_reference = psp_reference
        self.http_status = self.status_code
        super().__init__(
            code=PaymentCode.GATEWAY_TIMEOUT if self.status_code == 504 else PaymentCode.GATEWAY_ERROR,
            message=message,
            error_type="GatewayError",
            details={
                "status_code": self.status_code,
                "error_code": error_code,
                "psp_reference": psp_reference,
                "upstream": details,
            },
        )


class WebhookAuthenticationError(BusinessException):
    http_status = 401

    def __init__(self, message: str = "HMAC validation failed", *, details: dict | None = None):
        super().__init__(
            code=PaymentCode.WEBHOOK_SIGNATURE_INVALID,
            message=message,
            error_type="AuthenticationError",
            details=details,
        )


class MalformedNotificationError(BusinessException):
    http_status = 400

    def __init__(self, message: str = "Invalid webhook format: Missing notificationItems."):
        super().__init__(
            code=PaymentCode.WEBHOOK_MALFORMED,
            message=message,
            error_type="MalformedPayload",
        )
