"""
State enums and transition tables for payment models.
"""

from payments.state_machines.states import (
    INVOICE_TRANSITIONS,
    PAID_INVOICE_STATUSES,
    PAYOUT_TRANSITIONS,
    InvoiceStatus,
    OnboardingStatus,
    PayoutStatus,
    WebhookEventStatus,
    sources_for,
)

__all__ = [
    "INVOICE_TRANSITIONS",
    "InvoiceStatus",
    "OnboardingStatus",
    "PAID_INVOICE_STATUSES",
    "PAYOUT_TRANSITIONS",
    "PayoutStatus",
    "WebhookEventStatus",
    "sources_for",
]
