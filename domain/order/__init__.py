"""Order aggregate."""
from .entity import Order, OrderStatus, merchant_reference_for
from .repository import OrderRepository

__all__ = ["Order", "OrderStatus", "OrderRepository", "merchant_reference_for"]
