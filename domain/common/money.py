"""
金额值对象 - 以最小货币单位（整数）表示
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from domain.common.exceptions import DomainValidationException


@dataclass(frozen=True)
class Amount:
    """Minor-unit integer value plus ISO-4217 currency code."""

    value: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise DomainValidationException(
                f"Amount value must be an integer in minor units: {self.value!r}",
                field="amount.value",
            )
        if self.value < 0:
            raise DomainValidationException(
                f"Amount value must not be negative: {self.value}",
                field="amount.value",
            )
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"Invalid currency code: {self.currency!r}",
                field="amount.currency",
            )
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Amount":
        return cls(value=data["value"], currency=data["currency"])

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "currency": self.currency}

    def zeroed(self) -> "Amount":
        return Amount(value=0, currency=self.currency)

    def same_currency(self, other: "Amount") -> bool:
        return self.currency == other.currency
