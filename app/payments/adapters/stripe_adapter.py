"""
Stripe API adapter for the visit fee, invoice and payout flows.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency, and observability.

Features:
- Explicit per-call timeout; the SDK's own network retries are disabled
- Automatic error translation to GatewayError subclasses
- Structured logging with timing metrics
- Bounded retry with backoff for idempotent reads only
- Thread-safe for use from Celery workers

Money-moving calls (authorize, charge, capture, cancel, transfer, refund)
are never retried here. A GatewayError from one of them is terminal for
the current request.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_READ_MAX_RETRIES: Retry budget for reads (default: 3)
- PAYMENT_CURRENCY: Currency for every charge and transfer (default: mxn)

Usage:
    from payments.adapters import IdempotencyKeyGenerator, StripeAdapter

    result = StripeAdapter.create_authorization(
        amount_cents=settings.VISIT_FEE_CENTS,
        job_id=job.id,
        user_id=client.id,
        customer_id=customer_id,
        idempotency_key=IdempotencyKeyGenerator.generate("visit_auth", job.id),
    )

    snapshot = StripeAdapter.retrieve_status(job.stripe_visit_payment_intent_id)
    if snapshot.status == "requires_capture":
        StripeAdapter.capture(snapshot.id, idempotency_key=...)
"""

from __future__ import annotations

import hashlib
import json
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from payments.exceptions import (
    GatewayCardDeclinedError,
    GatewayError,
    GatewayInsufficientFundsError,
    GatewayInvalidAccountError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

if TYPE_CHECKING:
    from authentication.models import User


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class AuthorizationResult:
    """
    Result of creating a manual-capture PaymentIntent.

    Attributes:
        reference_id: PaymentIntent ID (pi_xxx)
        client_secret: Secret the frontend uses to confirm the card
        status: PaymentIntent status right after creation
    """

    reference_id: str
    client_secret: str | None
    status: str


@dataclass
class PaymentIntentSnapshot:
    """
    Point-in-time view of a PaymentIntent.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: requires_payment_method, requires_capture, succeeded, canceled, ...
        amount: Amount in centavos
        client_secret: Secret for client-side confirmation
        metadata: Attached metadata
    """

    id: str
    status: str
    amount: int
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckoutSessionResult:
    session_id: str
    url: str


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        transfer_id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in centavos
        currency: Currency code
        destination_account: Destination Stripe account ID
        transfer_group: Group tying the transfer to its invoice charge
        metadata: Attached metadata
    """

    transfer_id: str
    amount_cents: int
    currency: str
    destination_account: str
    transfer_group: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        refund_id: Refund ID (re_xxx)
        amount_cents: Refunded amount in centavos
        status: Refund status (succeeded, pending, failed)
        payment_intent_id: Original PaymentIntent ID
    """

    refund_id: str
    amount_cents: int
    status: str
    payment_intent_id: str


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity, attempt) always yields the same key, so a
    repeated transfer for a payout is deduplicated by Stripe.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="payout_transfer",
            entity_id=payout.id,
        )
        # Result: "payout_transfer:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate a deterministic idempotency key.

        Args:
            operation: The Stripe operation (visit_auth, capture, payout_transfer, ...)
            entity_id: The domain entity ID (job, invoice or payout)
            attempt: Attempt number (default: 1)

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_gateway_error(error: Exception) -> bool:
    """
    Check if a gateway error is retryable.

    Use this in Celery tasks to decide whether to retry:

        @shared_task(bind=True, max_retries=3)
        def process_webhook_event(self, event_id):
            try:
                ...
            except Exception as e:
                if is_retryable_gateway_error(e):
                    raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
                raise

    Returns:
        True if the error is a transient gateway error that can be retried
    """
    if isinstance(error, GatewayError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    # Add jitter (0-25% of delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Operations:
        create_authorization: Manual-capture PaymentIntent for the visit fee
        retrieve_status: Read a PaymentIntent (bounded retry)
        capture / cancel: Settle or void a manual-capture PaymentIntent
        create_invoice_charge: Automatic-capture PaymentIntent for an invoice
        create_checkout_session: Hosted checkout for an invoice
        create_transfer: Transfer to a provider's connected account
        create_refund: Refund a PaymentIntent
        ensure_customer: Resolve or create the user's Stripe customer
        verify_webhook_signature: Verify and parse a webhook payload
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout, SDK retries off."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = 0
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _currency() -> str:
        return getattr(settings, "PAYMENT_CURRENCY", "mxn")

    # =========================================================================
    # Visit Fee Authorization
    # =========================================================================

    @classmethod
    def create_authorization(
        cls,
        amount_cents: int,
        job_id: uuid.UUID | str,
        user_id: Any,
        customer_id: str | None,
        idempotency_key: str,
    ) -> AuthorizationResult:
        """
        Create a manual-capture PaymentIntent holding the visit fee.

        Args:
            amount_cents: Visit fee in centavos
            job_id: Job the authorization belongs to
            user_id: Client paying the visit fee
            customer_id: Stripe customer (cus_xxx)
            idempotency_key: Unique key for idempotent creation

        Returns:
            AuthorizationResult with the PaymentIntent id and client_secret

        Raises:
            GatewayError: Any Stripe failure (never retried)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_authorization",
            "job_id": str(job_id),
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=cls._currency(),
                customer=customer_id,
                capture_method="manual",
                automatic_payment_methods={"enabled": True},
                description=f"Visit fee authorization for job {job_id}",
                metadata={
                    "type": "visit_fee_authorization",
                    "job_id": str(job_id),
                    "user_id": str(user_id),
                },
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_intent_id": intent.id,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            return AuthorizationResult(
                reference_id=intent.id,
                client_secret=intent.client_secret,
                status=intent.status,
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

    @classmethod
    def retrieve_status(cls, reference_id: str) -> PaymentIntentSnapshot:
        """
        Retrieve a PaymentIntent by ID.

        Idempotent read: retryable errors (rate limit, unavailable, timeout)
        are retried up to STRIPE_READ_MAX_RETRIES times with backoff_delay.

        Raises:
            GatewayInvalidRequestError: PaymentIntent not found
            GatewayError: Retry budget exhausted
        """
        max_retries = getattr(settings, "STRIPE_READ_MAX_RETRIES", 3)
        attempt = 0

        while True:
            try:
                return cls._retrieve_status_once(reference_id)
            except GatewayError as e:
                if not e.is_retryable or attempt >= max_retries:
                    raise
                delay = backoff_delay(attempt)
                cls.get_logger().warning(
                    "Retrying Stripe read",
                    extra={
                        "operation": "retrieve_status",
                        "payment_intent_id": reference_id,
                        "attempt": attempt + 1,
                        "delay_seconds": delay,
                        "error_code": e.error_code,
                    },
                )
                time.sleep(delay)
                attempt += 1

    @classmethod
    def _retrieve_status_once(cls, reference_id: str) -> PaymentIntentSnapshot:
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_status",
            "payment_intent_id": reference_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.retrieve(reference_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            return PaymentIntentSnapshot(
                id=intent.id,
                status=intent.status,
                amount=intent.amount,
                client_secret=intent.client_secret,
                metadata=dict(intent.metadata or {}),
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def capture(cls, reference_id: str, idempotency_key: str) -> PaymentIntentSnapshot:
        """
        Capture a manual-capture PaymentIntent in full.

        Raises:
            GatewayInvalidRequestError: PaymentIntent not capturable
            GatewayError: Any other Stripe failure (never retried)
        """
        return cls._settle(
            "capture",
            stripe.PaymentIntent.capture,
            reference_id,
            idempotency_key,
        )

    @classmethod
    def cancel(cls, reference_id: str, idempotency_key: str) -> PaymentIntentSnapshot:
        """
        Void a manual-capture PaymentIntent, releasing the hold on the card.

        Raises:
            GatewayInvalidRequestError: PaymentIntent not cancelable
            GatewayError: Any other Stripe failure (never retried)
        """
        return cls._settle(
            "cancel",
            stripe.PaymentIntent.cancel,
            reference_id,
            idempotency_key,
        )

    @classmethod
    def _settle(
        cls,
        operation: str,
        call,
        reference_id: str,
        idempotency_key: str,
    ) -> PaymentIntentSnapshot:
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": operation,
            "payment_intent_id": reference_id,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = call(reference_id, idempotency_key=idempotency_key)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            return PaymentIntentSnapshot(
                id=intent.id,
                status=intent.status,
                amount=intent.amount,
                metadata=dict(intent.metadata or {}),
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Invoice Payment
    # =========================================================================

    @classmethod
    def create_invoice_charge(
        cls,
        amount_cents: int,
        customer_id: str | None,
        metadata: dict[str, str],
        transfer_group: str,
        idempotency_key: str,
    ) -> AuthorizationResult:
        """
        Create an automatic-capture PaymentIntent for an invoice.

        Args:
            amount_cents: total_customer_amount in centavos
            customer_id: Client's Stripe customer
            metadata: {type: "invoice_payment", invoice_id, job_id, provider_id, user_id}
            transfer_group: Invoice id; the provider payout uses the same group
            idempotency_key: Unique key for idempotent creation

        Raises:
            GatewayError: Any Stripe failure (never retried)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_invoice_charge",
            "amount_cents": amount_cents,
            "transfer_group": transfer_group,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=cls._currency(),
                customer=customer_id,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                transfer_group=transfer_group,
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_intent_id": intent.id,
                    "duration_ms": duration_ms,
                },
            )

            return AuthorizationResult(
                reference_id=intent.id,
                client_secret=intent.client_secret,
                status=intent.status,
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_checkout_session(
        cls,
        amount_cents: int,
        product_name: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_id: str | None = None,
        description: str | None = None,
    ) -> CheckoutSessionResult:
        """
        Create a hosted Checkout Session for a single line item.

        Returns:
            CheckoutSessionResult with session id and redirect url
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_checkout_session",
            "amount_cents": amount_cents,
            "metadata_type": metadata.get("type"),
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        product_data: dict[str, str] = {"name": product_name}
        if description:
            product_data["description"] = description

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": cls._currency(),
                            "unit_amount": amount_cents,
                            "product_data": product_data,
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "session_id": session.id,
                    "duration_ms": duration_ms,
                },
            )

            return CheckoutSessionResult(session_id=session.id, url=session.url)

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Payouts and Refunds
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        metadata: dict[str, str],
        idempotency_key: str,
        transfer_group: str | None = None,
    ) -> TransferResult:
        """
        Transfer funds to a provider's connected account.

        Fails closed: there is no retry. The caller records the failure and
        leaves the invoice in ready_to_release.

        Raises:
            GatewayInvalidAccountError: Destination account unusable
            GatewayError: Any other Stripe failure
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "transfer_group": transfer_group,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer_params: dict[str, Any] = {}
            if transfer_group:
                transfer_params["transfer_group"] = transfer_group

            transfer = stripe.Transfer.create(
                amount=amount_cents,
                currency=cls._currency(),
                destination=destination_account,
                metadata=metadata,
                idempotency_key=idempotency_key,
                **transfer_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferResult(
                transfer_id=transfer.id,
                amount_cents=transfer.amount,
                currency=transfer.currency,
                destination_account=destination_account,
                transfer_group=transfer_group,
                metadata=dict(transfer.metadata or {}),
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def find_transfer(cls, transfer_group: str, payout_id: str) -> TransferResult | None:
        """
        Find a transfer already made for a payout.

        Idempotency keys expire after about 24 hours; payouts retried later
        are matched here by transfer_group and metadata payout_id.

        Returns:
            TransferResult, or None when no transfer carries the payout id

        Raises:
            GatewayError: Stripe failure (the caller must not create a
                transfer without a definite answer)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "find_transfer",
            "transfer_group": transfer_group,
            "payout_id": payout_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            transfers = stripe.Transfer.list(transfer_group=transfer_group, limit=100)

            duration_ms = (time.time() - start_time) * 1000
            for transfer in transfers.data:
                metadata = dict(transfer.metadata or {})
                if metadata.get("payout_id") != payout_id:
                    continue
                logger.info(
                    "Existing transfer found",
                    extra={
                        **log_context,
                        "transfer_id": transfer.id,
                        "duration_ms": duration_ms,
                    },
                )
                return TransferResult(
                    transfer_id=transfer.id,
                    amount_cents=transfer.amount,
                    currency=transfer.currency,
                    destination_account=transfer.destination,
                    transfer_group=transfer_group,
                    metadata=metadata,
                )

            logger.debug(
                "Stripe operation completed",
                extra={**log_context, "found": False, "duration_ms": duration_ms},
            )
            return None

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_refund(
        cls,
        reference_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
    ) -> RefundResult:
        """
        Refund a captured PaymentIntent (full refund when amount_cents is None).
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": reference_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund_params: dict[str, Any] = {}
            if amount_cents is not None:
                refund_params["amount"] = amount_cents

            refund = stripe.Refund.create(
                payment_intent=reference_id,
                idempotency_key=idempotency_key,
                **refund_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult(
                refund_id=refund.id,
                amount_cents=refund.amount,
                status=refund.status,
                payment_intent_id=reference_id,
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Customers
    # =========================================================================

    @classmethod
    def ensure_customer(cls, user: User) -> str:
        """
        Resolve the user's Stripe customer id.

        Order: Profile.stripe_customer_id, then a customer lookup by email,
        then a new customer. The resolved id is persisted on the profile.

        Returns:
            Stripe customer id (cus_xxx)
        """
        from authentication.models import Profile

        profile, _ = Profile.objects.get_or_create(user=user)
        if profile.stripe_customer_id:
            return profile.stripe_customer_id

        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "ensure_customer",
            "user_id": user.pk,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            existing = stripe.Customer.list(email=user.email, limit=1)
            if existing.data:
                customer_id = existing.data[0].id
                created = False
            else:
                customer = stripe.Customer.create(
                    email=user.email,
                    name=profile.full_name or None,
                    metadata={"user_id": str(user.pk)},
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "create_customer", user.pk
                    ),
                )
                customer_id = customer.id
                created = True

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "customer_id": customer_id,
                    "created": created,
                    "duration_ms": duration_ms,
                },
            )

        except stripe.StripeError as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        Profile.objects.filter(pk=profile.pk).update(stripe_customer_id=customer_id)
        return customer_id

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event data dict

        Raises:
            GatewayInvalidRequestError: Invalid signature or payload
        """
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            raise GatewayInvalidRequestError(
                "Invalid webhook signature",
                gateway_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e

        try:
            return json.loads(payload)
        except ValueError as e:
            raise GatewayInvalidRequestError(
                "Invalid webhook payload",
                gateway_code="invalid_payload",
            ) from e

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to GatewayError subclasses.

        Raises:
            GatewayCardDeclinedError: Card was declined
            GatewayInsufficientFundsError: Insufficient funds
            GatewayInvalidAccountError: Invalid Connect account
            GatewayInvalidRequestError: Invalid request parameters
            GatewayRateLimitError: Rate limited
            GatewayTimeoutError: Request timed out
            GatewayUnavailableError: API unavailable
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise GatewayInsufficientFundsError(
                    str(error.user_message or error),
                    gateway_code=error.code,
                    decline_code=decline_code,
                )

            raise GatewayCardDeclinedError(
                str(error.user_message or error),
                gateway_code=error.code,
                decline_code=decline_code,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "gateway_code": error.code},
            )

            if "account" in str(error).lower():
                raise GatewayInvalidAccountError(
                    str(error),
                    gateway_code=error.code,
                )

            raise GatewayInvalidRequestError(
                str(error),
                gateway_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning(
                "Rate limited by Stripe",
                extra=log_context,
            )
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                raise GatewayTimeoutError(
                    "Stripe request timed out. Please retry.",
                    gateway_code="timeout",
                )
            raise GatewayUnavailableError(
                "Could not connect to Stripe. Please retry.",
                gateway_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error(
                "Stripe API error",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayUnavailableError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise GatewayInvalidRequestError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayUnavailableError(
                f"Unexpected Stripe error: {error}",
                gateway_code="unknown_error",
            )
