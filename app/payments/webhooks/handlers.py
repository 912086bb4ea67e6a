"""
Webhook event handlers for Stripe events.

This module provides a handler registry and implementations for the
events the payment lifecycle reacts to:

    checkout.session.completed                visit fee paid / invoice paid
    payment_intent.succeeded                  invoice paid / visit fee captured
    payment_intent.payment_failed             invoice payment failed
    payment_intent.canceled                   visit fee authorization voided
    payment_intent.amount_capturable_updated  visit fee authorized (log only)

Metadata is parsed at the boundary with payments.metadata.parse_metadata;
handlers branch on the typed variant and never read raw metadata keys.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult
from jobs.models import Job, JobStatus
from payments.locks import compare_and_set
from payments.metadata import (
    InvoicePaymentMetadata,
    UnknownMetadata,
    VisitFeeMetadata,
    parse_metadata,
)
from payments.models import WebhookEvent
from payments.services import InvoiceService

logger = logging.getLogger(__name__)

CHECKOUT_PAID_STATUSES = ("paid", "no_payment_required")


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types are logged and acknowledged.

    Raises:
        WebhookMetadataError: Known metadata type with missing/ill-typed keys
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success({"ignored": True})

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


def _ignore_unknown(webhook_event: WebhookEvent, metadata: UnknownMetadata) -> ServiceResult:
    logger.info(
        "Ignoring webhook with unknown metadata type",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
            "metadata_type": metadata.type,
        },
    )
    return ServiceResult.success({"ignored": True, "metadata_type": metadata.type})


# =============================================================================
# Checkout Session Handlers
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Handle a completed hosted checkout.

    visit fee: store the PaymentIntent on the job, set visit_fee_paid and
        confirm the job (guarded on visit_fee_paid=False, so replays no-op)
    invoice payment: InvoiceService.mark_paid
    """
    session = webhook_event.get_object()
    metadata = parse_metadata(session.get("metadata"))
    payment_intent_id = session.get("payment_intent") or ""
    log_context = {
        "stripe_event_id": webhook_event.stripe_event_id,
        "session_id": session.get("id"),
        "payment_status": session.get("payment_status"),
    }

    if isinstance(metadata, UnknownMetadata):
        return _ignore_unknown(webhook_event, metadata)

    if session.get("payment_status") not in CHECKOUT_PAID_STATUSES:
        logger.info("Checkout completed without payment, waiting", extra=log_context)
        return ServiceResult.success({"ignored": True})

    if isinstance(metadata, VisitFeeMetadata):
        values = {"visit_fee_paid": True, "status": JobStatus.CONFIRMED}
        if payment_intent_id:
            values["stripe_visit_payment_intent_id"] = payment_intent_id
        updated = compare_and_set(Job, metadata.job_id, {"visit_fee_paid": False}, **values)
        logger.info(
            "Visit fee checkout completed",
            extra={**log_context, "job_id": str(metadata.job_id), "updated": updated},
        )
        return ServiceResult.success({"job_id": str(metadata.job_id), "updated": updated})

    return InvoiceService.mark_paid(metadata.invoice_id, payment_intent_id or None)


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Handle a successful PaymentIntent.

    invoice payment: InvoiceService.mark_paid
    visit fee: the manual-capture authorization was captured; set
        visit_fee_paid if the job still references this PaymentIntent
    """
    payment_intent = webhook_event.get_object()
    payment_intent_id = payment_intent.get("id") or ""
    metadata = parse_metadata(payment_intent.get("metadata"))

    if isinstance(metadata, InvoicePaymentMetadata):
        return InvoiceService.mark_paid(metadata.invoice_id, payment_intent_id or None)

    if isinstance(metadata, VisitFeeMetadata):
        updated = compare_and_set(
            Job,
            metadata.job_id,
            {"visit_fee_paid": False, "stripe_visit_payment_intent_id": payment_intent_id},
            visit_fee_paid=True,
        )
        logger.info(
            "Visit fee capture confirmed",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "job_id": str(metadata.job_id),
                "payment_intent_id": payment_intent_id,
                "updated": updated,
            },
        )
        return ServiceResult.success({"job_id": str(metadata.job_id), "updated": updated})

    return _ignore_unknown(webhook_event, metadata)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Invoice payment failed: InvoiceService.mark_failed."""
    payment_intent = webhook_event.get_object()
    metadata = parse_metadata(payment_intent.get("metadata"))

    last_error = payment_intent.get("last_payment_error") or {}
    reason = last_error.get("message") or "Payment failed"

    if isinstance(metadata, InvoicePaymentMetadata):
        return InvoiceService.mark_failed(metadata.invoice_id, reason)

    if isinstance(metadata, VisitFeeMetadata):
        logger.info(
            "Visit fee authorization attempt failed",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "job_id": str(metadata.job_id),
                "reason": reason,
            },
        )
        return ServiceResult.success({"job_id": str(metadata.job_id), "updated": False})

    return _ignore_unknown(webhook_event, metadata)


@register_handler("payment_intent.canceled")
def handle_payment_intent_canceled(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Visit fee authorization voided or expired.

    Clears the job's reference only if it still points at this
    PaymentIntent, so the client can authorize again.
    """
    payment_intent = webhook_event.get_object()
    payment_intent_id = payment_intent.get("id") or ""
    metadata = parse_metadata(payment_intent.get("metadata"))

    if isinstance(metadata, VisitFeeMetadata):
        cleared = compare_and_set(
            Job,
            metadata.job_id,
            {"stripe_visit_payment_intent_id": payment_intent_id, "visit_fee_paid": False},
            stripe_visit_payment_intent_id="",
        )
        logger.info(
            "Visit fee authorization canceled",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "job_id": str(metadata.job_id),
                "payment_intent_id": payment_intent_id,
                "cleared": cleared,
            },
        )
        return ServiceResult.success({"job_id": str(metadata.job_id), "updated": cleared})

    if isinstance(metadata, UnknownMetadata):
        return _ignore_unknown(webhook_event, metadata)

    logger.info(
        "Invoice PaymentIntent canceled",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": payment_intent_id,
        },
    )
    return ServiceResult.success({"updated": False})


@register_handler("payment_intent.amount_capturable_updated")
def handle_amount_capturable_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """Visit fee authorization succeeded; capture happens on confirmation."""
    payment_intent = webhook_event.get_object()
    metadata = parse_metadata(payment_intent.get("metadata"))

    if isinstance(metadata, VisitFeeMetadata):
        logger.info(
            "Visit fee authorized",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "job_id": str(metadata.job_id),
                "payment_intent_id": payment_intent.get("id"),
                "amount_capturable": payment_intent.get("amount_capturable"),
            },
        )
        return ServiceResult.success({"job_id": str(metadata.job_id)})

    if isinstance(metadata, UnknownMetadata):
        return _ignore_unknown(webhook_event, metadata)

    return ServiceResult.success({"ignored": True})
