"""
Token 仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode

from .entity import StoredToken


class TokenAlreadyStoredException(BusinessException):
    """(shopper_reference, recurring_detail_reference) 已存在"""
    def __init__(self, shopper_reference: str, recurring_detail_reference: str):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="Stored payment method already exists",
            error_type="TokenAlreadyStored",
            details={
                "shopper_reference": shopper_reference,
                "recurring_detail_reference": recurring_detail_reference,
            },
        )


class TokenRepository(ABC):
    """Token 仓储抽象接口"""

    @abstractmethod
    async def create(self, token: StoredToken) -> StoredToken:
        """创建 token；唯一键冲突时抛出 TokenAlreadyStoredException"""
        pass

    @abstractmethod
    async def get_by_key(self, shopper_reference: str, recurring_detail_reference: str) -> Optional[StoredToken]:
        """按 (shopper_reference, recurring_detail_reference) 获取"""
        pass

    @abstractmethod
    async def list_by_shopper(self, shopper_reference: str) -> List[StoredToken]:
        """获取购物者的全部 token"""
        pass
