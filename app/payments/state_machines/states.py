"""
State enums and allowed transitions for payment models.

These are Django TextChoices for database storage and admin integration.
Transitions are written as conditional updates (payments.locks.transition)
whose `expected` filter is built from the source states listed here.

State Machines Overview:

Invoice Status:
    pending → paid → released                       (provider account enabled)
    pending → paid → ready_to_release → released    (account not ready / transfer failed)
    pending/accepted → failed → paid                (client retried the payment)
    draft → pending, pending → accepted, any open → cancelled

Payout Status:
    pending → paid
    pending → failed → paid (admin retry or manual mark)

WebhookEvent Status:
    pending → processing → processed
    pending → processing → failed
"""

from django.db import models


class InvoiceStatus(models.TextChoices):
    """
    States for the Invoice model lifecycle.

    Terminal states: RELEASED, CANCELLED
    """

    DRAFT = "draft", "Draft"
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    READY_TO_RELEASE = "ready_to_release", "Ready To Release"
    RELEASED = "released", "Released"
    CANCELLED = "cancelled", "Cancelled"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    A payout with a stripe_transfer_id is never transferred again,
    whatever its status.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class OnboardingStatus(models.TextChoices):
    """
    Stripe Connect onboarding status of a provider's payout account.

    Only ENABLED allows receiving transfers.
    """

    ONBOARDING = "onboarding", "Onboarding"
    ENABLED = "enabled", "Enabled"
    RESTRICTED = "restricted", "Restricted"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


# Target state -> states it may be entered from
INVOICE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    InvoiceStatus.PENDING: (InvoiceStatus.DRAFT,),
    InvoiceStatus.ACCEPTED: (InvoiceStatus.PENDING,),
    InvoiceStatus.PAID: (
        InvoiceStatus.PENDING,
        InvoiceStatus.ACCEPTED,
        InvoiceStatus.FAILED,
    ),
    InvoiceStatus.FAILED: (InvoiceStatus.PENDING, InvoiceStatus.ACCEPTED),
    InvoiceStatus.READY_TO_RELEASE: (InvoiceStatus.PAID,),
    InvoiceStatus.RELEASED: (InvoiceStatus.PAID, InvoiceStatus.READY_TO_RELEASE),
    InvoiceStatus.CANCELLED: (
        InvoiceStatus.DRAFT,
        InvoiceStatus.PENDING,
        InvoiceStatus.ACCEPTED,
        InvoiceStatus.FAILED,
    ),
}

PAYOUT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    PayoutStatus.PAID: (PayoutStatus.PENDING, PayoutStatus.FAILED),
    PayoutStatus.FAILED: (PayoutStatus.PENDING,),
}

# Invoices the admin console lists as paid by the client
PAID_INVOICE_STATUSES = (
    InvoiceStatus.PAID,
    InvoiceStatus.READY_TO_RELEASE,
    InvoiceStatus.RELEASED,
)


def sources_for(transitions: dict[str, tuple[str, ...]], target: str) -> list[str]:
    """States a row must be in to move to `target`."""
    return [str(state) for state in transitions.get(target, ())]


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
