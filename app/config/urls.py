"""
URL configuration for the Chamby payments backend.

URL Structure:
    /                                       - ReDoc API documentation
    /admin/                                 - Django admin interface
    /health/                                - Health check endpoint (Docker, load balancers)
    /schema/                                - OpenAPI schema (YAML)
    /api/v1/auth/token/                     - Obtain JWT pair (simplejwt)
    /api/v1/auth/token/refresh/             - Refresh access token
    /api/v1/jobs/                           - Job endpoints
        {job_id}/complete/                  - provider_mark_done / client_confirm
    /api/v1/notifications/                  - Notification inbox
    /api/v1/payments/                       - Payment endpoints
        visit-authorization/                - Create visit fee authorization
        visit-authorization/{job_id}/       - Visit fee authorization status
        visit-confirmation/                 - Visit confirm / dispute / resolve
        invoices/                           - Create or fetch the job invoice
        invoices/{invoice_id}/checkout/     - Hosted checkout for an invoice
        jobs/{job_id}/status/               - Job payment status and labels
        admin/payouts/                      - Payout list + summary / create
        admin/payouts/{id}/mark-paid/       - Mark payout paid
        admin/payouts/{id}/release/         - Transfer payout to provider
        admin/invoices/paid/                - Paid invoices with payout flag
        webhooks/stripe/                    - Stripe webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/4.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Jobs
    path("jobs/", include("jobs.urls")),
    # Notifications
    path("notifications/", include("notifications.urls")),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Chamby Admin"
admin.site.site_title = "Chamby"
admin.site.index_title = "Pagos, trabajos y usuarios"
