"""
Payment services for the visit fee, invoice and payout lifecycle.

This module provides:
- VisitAuthorizationService: Visit fee authorization and visit confirmation
- InvoiceService: Invoice creation, checkout and payment outcomes
- EscrowReleaseService: Transfers the provider's share of a paid invoice
- AdminPayoutService: Payout console for admins
- ProviderPayoutService: Payout history and earnings for providers

Usage:
    from payments.services import VisitAuthorizationService

    result = VisitAuthorizationService.create_authorization(ctx, job_id)

    from payments.services import EscrowReleaseService

    result = EscrowReleaseService.release_for_job(job_id)
    result.data.outcome  # "released", "queued", "already_released", "skipped"
"""

from payments.services.admin_payout_service import AdminPayoutService
from payments.services.escrow_release_service import (
    EscrowReleaseService,
    ReleaseOutcome,
)
from payments.services.invoice_service import InvoiceService
from payments.services.provider_payout_service import ProviderPayoutService
from payments.services.visit_authorization_service import VisitAuthorizationService

__all__ = [
    "AdminPayoutService",
    "EscrowReleaseService",
    "InvoiceService",
    "ProviderPayoutService",
    "ReleaseOutcome",
    "VisitAuthorizationService",
]
