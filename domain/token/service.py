"""
Token 领域服务 - 记录可复用支付方式并保证去重
"""
from __future__ import annotations

import uuid
from typing import List, Optional

from domain.common.exceptions import StoredTokensNotFoundException

from .entity import StoredToken
from .repository import TokenRepository, TokenAlreadyStoredException


class TokenVault:
    """
    Token 保险库

    职责：
    1. 记录购物者的可复用支付方式引用
    2. 同一 (shopper_reference, recurring_detail_reference) 只保留一条记录
    """

    def __init__(self, token_repository: TokenRepository):
        self.token_repository = token_repository

    async def record_token(
        self,
        shopper_reference: str,
        recurring_detail_reference: str,
        brand: Optional[str],
        summary: Optional[str],
        payment_method_type: Optional[str],
        *,
        expiry_month: Optional[str] = None,
        expiry_year: Optional[str] = None,
    ) -> tuple[StoredToken, bool]:
        """返回 (token, 是否新建)"""
        existing = await self.token_repository.get_by_key(shopper_reference, recurring_detail_reference)
        if existing is not None:
            return existing, False

        token = StoredToken(
            id=str(uuid.uuid4()),
            shopper_reference=shopper_reference,
            recurring_detail_reference=recurring_detail_reference,
            brand=brand,
            summary=summary,
            payment_method_type=payment_method_type,
            expiry_month=expiry_month,
            expiry_year=expiry_year,
        )
        try:
            created = await self.token_repository.create(token)
        except TokenAlreadyStoredException:
            # 并发写入时由唯一约束兜底
            existing = await self.token_repository.get_by_key(shopper_reference, recurring_detail_reference)
            if existing is None:
                raise
            return existing, False
        return created, True

    async def list_tokens(self, shopper_reference: str) -> List[StoredToken]:
        tokens = await self.token_repository.list_by_shopper(shopper_reference)
        if not tokens:
            raise StoredTokensNotFoundException(shopper_reference)
        return tokens
