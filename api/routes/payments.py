"""
Payments API routes.

Attempts a (partial) payment against an order and relays challenge/redirect
details. Keep this thin: no gateway details here.
"""
from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from api.dependencies import get_payment_service
from application.dtos.payments import CreatePaymentRequest, PaymentAttemptResponse, PaymentDetailsRequest
from application.services.payment_service import PaymentApplicationService
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("", response_model=PaymentAttemptResponse, summary="Attempt payment against an order")
async def create_payment(
    payload: CreatePaymentRequest,
    request: Request,
    service: PaymentApplicationService = Depends(get_payment_service),
):
    origin = str(request.base_url).rstrip("/")
    return await service.attempt_payment(payload, origin=origin)


async def _details_from_request(request: Request) -> dict[str, Any]:
    """GET 重定向回跳取 query；POST 取 JSON 的 details/payload，或表单/整个 body"""
    if request.method == "GET":
        return dict(request.query_params)

    raw = await request.body()
    if not raw:
        return {}
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("utf-8", errors="ignore")))
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise DomainValidationException("Request body must be valid JSON.", field="details") from exc
    if not isinstance(body, dict):
        raise DomainValidationException("Request body must be a JSON object.", field="details")
    if "details" not in body and "payload" not in body:
        return body
    try:
        return PaymentDetailsRequest.model_validate(body).resolved_details()
    except ValidationError as exc:
        raise DomainValidationException(
            "Invalid details payload.",
            field="details",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@router.api_route(
    "/details/{payment_id}",
    methods=["GET", "POST"],
    summary="Submit challenge/redirect details",
    response_model=None,
)
async def submit_payment_details(
    payment_id: str,
    request: Request,
    service: PaymentApplicationService = Depends(get_payment_service),
):
    details = await _details_from_request(request)
    result = await service.submit_payment_details(payment_id, details)
    if result.redirect_url:
        logger.info("payment_details_redirect", payment_id=payment_id, result_code=result.result_code)
        return RedirectResponse(url=result.redirect_url, status_code=303)
    return JSONResponse(content=result.model_dump(mode="json", by_alias=True))
