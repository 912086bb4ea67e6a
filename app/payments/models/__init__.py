"""
Payment domain models.

- Invoice / InvoiceItem: Provider's bill for a job and its lines
- Payout: Transfer of the provider's share of a paid invoice
- ProviderPayoutAccount: Provider's Stripe Connect account
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from payments.models.invoice import Invoice, InvoiceItem
from payments.models.payout import Payout
from payments.models.payout_account import ProviderPayoutAccount
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Invoice",
    "InvoiceItem",
    "Payout",
    "ProviderPayoutAccount",
    "WebhookEvent",
]
