"""
Base payment client implementing shared concerns: http, timeouts, logging and
error mapping.

Concrete providers subclass and implement provider-specific endpoints. Calls
are never retried here; a timeout or transport failure surfaces as
``PaymentGatewayError`` and retry is left to the caller.
"""
from __future__ import annotations

import time
from typing import Any, Optional
from contextlib import asynccontextmanager

import httpx

from core.logging_config import get_logger
from domain.common.exceptions import PaymentGatewayError


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str,
        timeouts: Optional[dict[str, float]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 10.0, "write": 10.0, "total": 15.0}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg["total"],
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self.timeouts,
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    def _default_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    async def _post_json(
        self,
        path: str,
        body: dict[str, Any],
        *,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        headers = self._default_headers()
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        started = time.perf_counter()
        try:
            async with self.client() as client:
                response = await client.post(path, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            self._log("gateway_timeout", path=path, error=str(exc))
            raise PaymentGatewayError(
                f"Payment gateway timed out calling {path}",
                status_code=504,
                details={"path": path},
            ) from exc
        except httpx.TransportError as exc:
            self._log("gateway_transport_error", path=path, error=str(exc))
            raise PaymentGatewayError(
                f"Payment gateway unreachable: {exc}",
                status_code=502,
                details={"path": path},
            ) from exc

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        data = self._decode(response)
        if response.is_error:
            self._log(
                "gateway_error_response",
                path=path,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
                error_code=data.get("errorCode"),
            )
            raise self._map_error(response.status_code, data)

        self._log("gateway_call", path=path, status_code=response.status_code, elapsed_ms=elapsed_ms)
        return data

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {"message": response.text} if response.text else {}
        return data if isinstance(data, dict) else {"data": data}

    def _map_error(self, status_code: int, data: dict[str, Any]) -> PaymentGatewayError:
        return PaymentGatewayError(
            data.get("message") or f"Payment gateway returned HTTP {status_code}",
            status_code=status_code,
            details=data,
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
