"""
Payment specific codes and gateway result-code groupings.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Gateway/Network errors (6xxxx)
    GATEWAY_ERROR = 60000
    GATEWAY_TIMEOUT = 60003

    # Webhook errors (61xxx)
    WEBHOOK_SIGNATURE_INVALID = 61000
    WEBHOOK_MALFORMED = 61001


# Synchronous result codes after which a stored payment method may be recorded
TOKENIZABLE_RESULT_CODES = frozenset({"Authorised", "Received"})

# Result codes that leave the attempt waiting on the shopper
CHALLENGE_RESULT_CODES = frozenset({
    "ChallengeShopper",
    "IdentifyShopper",
    "RedirectShopper",
    "PresentToShopper",
    "Pending",
})
