"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; services receive the fragments they
need through their constructors rather than importing this module.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class WebhookSettings(BaseModel):
    # Escape hatch: accept notifications without HMAC verification when no key is configured
    allow_unsigned: bool = False
    acknowledgement: str = "[accepted]"


class AdyenSettings(BaseModel):
    api_key: Optional[str] = None
    merchant_account: Optional[str] = None
    client_key: Optional[str] = None
    environment: str = "TEST"  # TEST or LIVE
    live_url_prefix: Optional[str] = None
    api_version: int = 71
    hmac_key: Optional[str] = None
    # merchantAccountCode -> hex HMAC key, overrides hmac_key per notification item
    hmac_keys: dict[str, str] = Field(default_factory=dict)

    @property
    def checkout_base_url(self) -> str:
        if self.environment.upper() == "LIVE":
            if not self.live_url_prefix:
                raise RuntimeError("PAYMENT__ADYEN__LIVE_URL_PREFIX is required for LIVE environment")
            return f"https://{self.live_url_prefix}-checkout-live.adyenpayments.com/checkout/v{self.api_version}"
        return f"https://checkout-test.adyen.com/v{self.api_version}"

    def hmac_key_for(self, merchant_account_code: Optional[str]) -> Optional[str]:
        if isinstance(merchant_account_code, str) and merchant_account_code in self.hmac_keys:
            return self.hmac_keys[merchant_account_code]
        return self.hmac_key


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    adyen: AdyenSettings = Field(default_factory=AdyenSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
