"""
Guard for ledger writes that follow a successful gateway call.

The remote side has already changed state at this point; if the local write
fails, the error is logged with enough context for manual reconciliation and
then re-raised.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


logger = get_logger(__name__)


@asynccontextmanager
async def local_write_guard(event: str, **context: Any) -> AsyncIterator[None]:
    try:
        yield
    except BusinessException:
        raise
    except Exception as exc:
        logger.error(event, error=str(exc), exc_info=True, **context)
        raise
