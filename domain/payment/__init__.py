"""Payment attempt aggregate."""
from .entity import Payment, PaymentStatus, merchant_reference_for
from .repository import PaymentRepository

__all__ = ["Payment", "PaymentStatus", "PaymentRepository", "merchant_reference_for"]
