"""
Payments app for the job payment lifecycle on Stripe.

This app handles:
- Visit fee authorization, confirmation handshake, capture and void
- Provider invoices, hosted checkout and commission split
- Escrow release of the provider share to a Connect account
- Stripe webhook ingestion and processing
- Reconciliation sweeps (auto-complete, visit confirmation timeout)
- Admin payout console

Related apps:
    - jobs: Job the payments belong to
    - authentication: AuthContext, Profile.stripe_customer_id
    - notifications: Payment event notifications

Usage:
    from payments.services import InvoiceService, VisitAuthorizationService

    VisitAuthorizationService.create_authorization(ctx, job_id)
    InvoiceService.create_or_get_invoice(ctx, job_id, line_items)
"""
