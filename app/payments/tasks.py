"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing Stripe webhook events
- Releasing escrow for a job (queued after commit by the services)
- Periodic cleanup of old webhook events

The reconciliation sweeps live in payments.workers and are re-exported at
the bottom of this module so Celery autodiscovery registers them.

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(str(webhook_event.id))

    # Queue escrow release once the surrounding transaction commits
    transaction.on_commit(lambda: release_escrow_for_job.delay(str(job.id)))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError
from payments.adapters import backoff_delay, is_retryable_gateway_error
from payments.exceptions import LockAcquisitionError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5
MAX_ESCROW_RETRIES = 3


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(bind=True, max_retries=MAX_WEBHOOK_RETRIES, acks_late=True)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a Stripe webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the registered handler
    5. Marks as processed or failed

    Retry policy:
    - Retryable gateway errors and lock contention: retried with backoff
    - Application errors (bad metadata, missing invoice, ...): marked
      failed, not retried
    - Anything else: marked failed and re-raised

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status
    """
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": "already_processed",
            "webhook_event_id": str(webhook_event_id),
        }

    webhook_event.mark_processing()
    webhook_event.save()

    log_context = {
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
        "event_type": webhook_event.event_type,
        "retry_count": webhook_event.retry_count,
    }
    logger.info(f"Dispatching webhook: {webhook_event.event_type}", extra=log_context)

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)

    except (LockAcquisitionError, BaseApplicationError) as e:
        webhook_event.mark_failed(str(e))
        webhook_event.save()

        retryable = isinstance(e, LockAcquisitionError) or is_retryable_gateway_error(e)
        if retryable and self.request.retries < self.max_retries:
            logger.warning(
                "Webhook processing hit a transient error, retrying",
                extra={**log_context, "error_code": e.error_code},
            )
            raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))

        logger.error(
            "Webhook processing failed",
            extra={**log_context, "error_code": e.error_code, "error": e.message},
        )
        return {
            "status": "failed",
            "webhook_event_id": str(webhook_event_id),
            "error_code": e.error_code,
        }

    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()

        logger.exception(
            "Webhook processing failed with exception",
            extra={**log_context, "error": error_msg},
        )
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={**log_context, "error_code": result.error_code},
        )
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
        }

    webhook_event.mark_processed()
    webhook_event.save()
    logger.info("Webhook processed successfully", extra=log_context)
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


@shared_task
def cleanup_old_webhook_events(days: int | None = None) -> dict:
    """
    Delete processed webhook events older than the retention window.

    Failed events are kept for debugging.

    Args:
        days: Retention in days (default: WEBHOOK_EVENT_RETENTION_DAYS)
    """
    days = days if days is not None else settings.WEBHOOK_EVENT_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}


# =============================================================================
# Escrow Release
# =============================================================================


@shared_task(bind=True, max_retries=MAX_ESCROW_RETRIES)
def release_escrow_for_job(self, job_id: str) -> dict:
    """
    Release the escrowed invoice funds of a job.

    Lock contention is retried with backoff. Gateway failures are not
    retried: EscrowReleaseService leaves the invoice ready_to_release and
    an admin releases it from the payout console.
    """
    from payments.services import EscrowReleaseService

    try:
        result = EscrowReleaseService.release_for_job(job_id)
    except LockAcquisitionError as e:
        if self.request.retries < self.max_retries:
            logger.warning(
                "Escrow release lock busy, retrying",
                extra={"job_id": job_id, "retries": self.request.retries},
            )
            raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
        raise

    outcome = result.data
    logger.info(
        "Escrow release finished",
        extra={"job_id": job_id, **outcome.to_dict()},
    )
    return {"job_id": job_id, **outcome.to_dict()}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in payments.workers but re-exported here for
# convenience and to ensure Celery autodiscover finds them.

from payments.workers import (  # noqa: E402, F401
    auto_complete_jobs,
    check_visit_confirmations,
)
