"""
Payments app configuration.

This app provides the payment lifecycle of a job:
- Visit fee authorization, capture and void (Stripe manual capture)
- Provider invoices and hosted checkout
- Escrow release to the provider's connected account
- Stripe webhook processing and reconciliation sweeps
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
