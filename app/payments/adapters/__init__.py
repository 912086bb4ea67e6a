"""
Payment adapters for external services.

All Stripe calls go through StripeAdapter to ensure consistent error
handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import IdempotencyKeyGenerator, StripeAdapter

    snapshot = StripeAdapter.retrieve_status("pi_xxx")
"""

from payments.adapters.stripe_adapter import (
    AuthorizationResult,
    CheckoutSessionResult,
    IdempotencyKeyGenerator,
    PaymentIntentSnapshot,
    RefundResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
    is_retryable_gateway_error,
)

__all__ = [
    "AuthorizationResult",
    "CheckoutSessionResult",
    "IdempotencyKeyGenerator",
    "PaymentIntentSnapshot",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
    "backoff_delay",
    "is_retryable_gateway_error",
]
