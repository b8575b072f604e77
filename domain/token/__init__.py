"""Stored payment method (token) aggregate."""
from .entity import StoredToken
from .repository import TokenRepository, TokenAlreadyStoredException
from .service import TokenVault

__all__ = ["StoredToken", "TokenRepository", "TokenAlreadyStoredException", "TokenVault"]
