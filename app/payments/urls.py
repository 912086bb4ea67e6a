"""
URL configuration for the payments app.

Routes:
    - POST visit-authorization/ - Create visit fee authorization
    - GET  visit-authorization/{job_id}/ - Authorization status
    - POST visit-confirmation/ - Visit confirmation handshake
    - POST invoices/ - Create or fetch the job's invoice
    - GET  invoices/client/ - Caller's invoices as client
    - GET  invoices/provider/ - Caller's invoices as provider
    - GET  invoices/{invoice_id}/ - Invoice detail
    - POST invoices/{invoice_id}/checkout/ - Hosted checkout
    - GET  jobs/{job_id}/status/ - Job payment status
    - GET  payouts/ - Caller's payouts
    - GET  payouts/{payout_id}/ - Payout detail
    - GET  earnings/ - Caller's earnings
    - GET/POST admin/payouts/ - Payout console
    - POST admin/payouts/{payout_id}/mark-paid/
    - POST admin/payouts/{payout_id}/release/
    - GET  admin/invoices/paid/
    - POST webhooks/stripe/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    # Visit fee
    path(
        "visit-authorization/",
        views.VisitAuthorizationView.as_view(),
        name="visit_authorization",
    ),
    path(
        "visit-authorization/<uuid:job_id>/",
        views.VisitAuthorizationStatusView.as_view(),
        name="visit_authorization_status",
    ),
    path(
        "visit-confirmation/",
        views.VisitConfirmationView.as_view(),
        name="visit_confirmation",
    ),
    # Invoices
    path("invoices/", views.InvoiceCreateView.as_view(), name="invoice_create"),
    path(
        "invoices/client/",
        views.ClientInvoiceListView.as_view(),
        name="client_invoices",
    ),
    path(
        "invoices/provider/",
        views.ProviderInvoiceListView.as_view(),
        name="provider_invoices",
    ),
    path(
        "invoices/<uuid:invoice_id>/",
        views.InvoiceDetailView.as_view(),
        name="invoice_detail",
    ),
    path(
        "invoices/<uuid:invoice_id>/checkout/",
        views.InvoiceCheckoutView.as_view(),
        name="invoice_checkout",
    ),
    # Status
    path(
        "jobs/<uuid:job_id>/status/",
        views.JobPaymentStatusView.as_view(),
        name="job_payment_status",
    ),
    # Provider payouts and earnings
    path("payouts/", views.ProviderPayoutListView.as_view(), name="provider_payouts"),
    path(
        "payouts/<uuid:payout_id>/",
        views.ProviderPayoutDetailView.as_view(),
        name="provider_payout_detail",
    ),
    path("earnings/", views.ProviderEarningsView.as_view(), name="provider_earnings"),
    # Admin payout console
    path(
        "admin/payouts/",
        views.AdminPayoutListCreateView.as_view(),
        name="admin_payouts",
    ),
    path(
        "admin/payouts/<uuid:payout_id>/mark-paid/",
        views.AdminPayoutMarkPaidView.as_view(),
        name="admin_payout_mark_paid",
    ),
    path(
        "admin/payouts/<uuid:payout_id>/release/",
        views.AdminPayoutReleaseView.as_view(),
        name="admin_payout_release",
    ),
    path(
        "admin/invoices/paid/",
        views.AdminPaidInvoicesView.as_view(),
        name="admin_paid_invoices",
    ),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
