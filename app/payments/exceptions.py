"""
Payment-specific exceptions.

Exception Hierarchy:
    PaymentError (base for payment domain)
    └── GatewayError - Base for all payment gateway (Stripe) errors (502)
        ├── GatewayCardDeclinedError - Card declined (permanent)
        ├── GatewayInsufficientFundsError - Insufficient funds (permanent)
        ├── GatewayInvalidAccountError - Invalid connected account (permanent)
        ├── GatewayInvalidRequestError - Invalid request / bad signature (permanent)
        ├── GatewayRateLimitError - Rate limited (transient, retry)
        ├── GatewayUnavailableError - API unavailable (transient, retry)
        └── GatewayTimeoutError - Request timeout (transient, retry)

    LockAcquisitionError - Distributed lock not acquired (inherits ConflictError)
    InvalidStateTransitionError - Row not in the expected state (inherits ConflictError)
    WebhookMetadataError - Webhook metadata missing or ill-typed

Usage:
    from payments.exceptions import GatewayError, LockAcquisitionError

    try:
        StripeAdapter.capture(job.stripe_visit_payment_intent_id, idempotency_key=key)
    except GatewayError as e:
        if e.is_retryable:
            ...

Note:
    GatewayError messages come from Stripe and may be in English. The API
    exception handler renders them as 502 with the error code only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(PaymentError, ExternalServiceError):
    """
    Base exception for all payment gateway errors.

    Provides common attributes for gateway error handling:
    - gateway_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried

    Only idempotent reads are retried in-process. Callers of money-moving
    operations (authorize, charge, capture, transfer) treat any GatewayError
    as terminal for the current request.
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class GatewayCardDeclinedError(GatewayError):
    """
    Card was declined by the issuing bank.

    The decline_code attribute contains the specific reason
    (generic_decline, lost_card, expired_card, incorrect_cvc, ...).
    """

    default_error_code: str = "CARD_DECLINED"


class GatewayInsufficientFundsError(GatewayError):
    """Insufficient funds on the payment method. User action is required."""

    default_error_code: str = "INSUFFICIENT_FUNDS"


class GatewayInvalidAccountError(GatewayError):
    """
    Invalid Stripe Connect destination account.

    Raised when the provider's connected account is not found, disabled or
    unable to receive transfers. Requires manual intervention.
    """

    default_error_code: str = "INVALID_GATEWAY_ACCOUNT"


class GatewayInvalidRequestError(GatewayError):
    """
    Invalid request sent to the gateway.

    Also raised for webhook payloads whose signature does not verify.
    """

    default_error_code: str = "INVALID_GATEWAY_REQUEST"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class GatewayRateLimitError(GatewayError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """
    Stripe API is temporarily unavailable.

    Covers network connectivity issues and Stripe server errors (5xx).
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """
    Stripe API call timed out.

    IMPORTANT: The operation may have succeeded on Stripe's side. Money-moving
    calls carry idempotency keys so a later attempt with the same key returns
    the original result instead of duplicating it.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Attributes:
        details: Contains key and timeout information

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        it represents a resource contention conflict.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a conditional state update affected no rows.

    The row was either in a different state than expected or was changed
    concurrently by another process.

    Attributes:
        details: Contains model, pk and the expected field values
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookMetadataError(ValidationError):
    """
    Raised when webhook metadata is missing keys or has ill-typed values.

    The webhook event is marked failed and is not retried.
    """

    default_error_code: str = "INVALID_WEBHOOK_METADATA"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    # Gateway
    "GatewayError",
    "GatewayCardDeclinedError",
    "GatewayInsufficientFundsError",
    "GatewayInvalidAccountError",
    "GatewayInvalidRequestError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "GatewayTimeoutError",
    # Concurrency control
    "LockAcquisitionError",
    "InvalidStateTransitionError",
    # Webhooks
    "WebhookMetadataError",
]
