"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    PROVIDER_AUTH = 60002
    TIMEOUT = 60003
    PROVIDER_NOT_CONFIGURED = 60005
    PROVIDER_NOT_FOUND = 60006


# Provider-native order status -> normalized order status (paid | refunded | pending).
# Anything not listed is treated as "pending" and therefore never imported.
PROVIDER_STATUS_TO_INTERNAL = {
    "lemonsqueezy": {
        "paid": "paid",
        "refunded": "refunded",
        "partial_refund": "paid",
        "pending": "pending",
        "failed": "pending",
    },
    "polar": {
        "paid": "paid",
        "succeeded": "paid",
        "refunded": "refunded",
        "partially_refunded": "paid",
        "pending": "pending",
    },
    "stripe": {
        # Checkout Session payment_status
        "paid": "paid",
        "no_payment_required": "paid",
        "unpaid": "pending",
        # Charge lifecycle (webhooks)
        "refunded": "refunded",
    },
}
