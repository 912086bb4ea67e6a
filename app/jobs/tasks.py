"""
Celery tasks for the jobs app.

Tasks:
- check_expired_reschedules: Periodic sweep (every 5 minutes via celery beat)
  that returns jobs to the unassigned pool when the provider did not answer
  a reschedule request in time, and warns providers whose deadline is close.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from jobs.models import Job, JobStatus, RescheduleRequest, RescheduleStatus
from notifications.models import NotificationKind
from notifications.services import NotificationService
from payments.locks import compare_and_set, single_flight

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BATCH_SIZE = 100
SWEEP_LOCK_TTL = 300


# =============================================================================
# Periodic Task
# =============================================================================


@shared_task(bind=True)
def check_expired_reschedules(self) -> dict:
    """
    Expire unanswered reschedule requests and send deadline warnings.

    Expiry, per pending request whose job deadline has passed:
    1. Request pending -> expired (conditional)
    2. Job loses its provider, goes back to pending at the requested date
    3. Former provider gets job_transferred, client gets provider_changed

    Warnings: one transfer_warning per request whose deadline falls within
    RESCHEDULE_WARNING_MINUTES, deduplicated over
    RESCHEDULE_WARNING_DEDUPE_HOURS.

    Returns:
        {success, processed, warned, errors, total}, or {"skipped": True}
    """
    with single_flight("sweep:check_expired_reschedules", ttl=SWEEP_LOCK_TTL) as acquired:
        if not acquired:
            logger.info("Reschedule sweep already running, skipping")
            return {"skipped": True}

        now = timezone.now()
        expired = list(
            RescheduleRequest.objects.filter(
                status=RescheduleStatus.PENDING,
                job__reschedule_response_deadline__isnull=False,
                job__reschedule_response_deadline__lt=now,
            )
            .select_related("job")
            .order_by("job__reschedule_response_deadline")[:BATCH_SIZE]
        )

        processed = 0
        errors = 0
        for request in expired:
            try:
                if _expire_request(request):
                    processed += 1
            except Exception as e:
                errors += 1
                logger.exception(
                    f"Failed to expire reschedule request: {e}",
                    extra={"reschedule_id": str(request.id), "job_id": str(request.job_id)},
                )

        warned = _send_deadline_warnings(now)

    logger.info(
        f"Reschedule sweep complete: {processed}/{len(expired)} expired, {warned} warned",
        extra={
            "processed": processed,
            "warned": warned,
            "errors": errors,
            "total": len(expired),
        },
    )
    return {
        "success": True,
        "processed": processed,
        "warned": warned,
        "errors": errors,
        "total": len(expired),
    }


# =============================================================================
# Helpers
# =============================================================================


def _expire_request(request: RescheduleRequest) -> bool:
    """Expire one request. False if another run already handled it."""
    job = request.job
    former_provider_id = job.provider_id

    with transaction.atomic():
        if not compare_and_set(
            RescheduleRequest,
            request.id,
            {"status": RescheduleStatus.PENDING},
            status=RescheduleStatus.EXPIRED,
        ):
            return False

        compare_and_set(
            Job,
            job.id,
            {},
            provider=None,
            status=JobStatus.PENDING,
            scheduled_at=request.requested_date,
            reschedule_requested_at=None,
            reschedule_requested_date=None,
            reschedule_response_deadline=None,
        )

    data = {"job_id": str(job.id), "reschedule_id": str(request.id)}
    if former_provider_id:
        NotificationService.create_notification(
            recipient_id=former_provider_id,
            type=NotificationKind.JOB_TRANSFERRED,
            title="Trabajo reasignado",
            message=(
                f'No respondiste a tiempo la reprogramación de "{job.title}". '
                "El trabajo fue reasignado."
            ),
            link="/provider-portal/jobs",
            data=data,
        )
    NotificationService.create_notification(
        recipient_id=job.client_id,
        type=NotificationKind.PROVIDER_CHANGED,
        title="Buscando nuevo profesional",
        message=f'Estamos asignando "{job.title}" a otro profesional verificado.',
        link=f"/bookings/{job.id}",
        data=data,
    )

    logger.info(
        "Reschedule request expired, job returned to pool",
        extra={
            "reschedule_id": str(request.id),
            "job_id": str(job.id),
            "former_provider_id": former_provider_id,
        },
    )
    return True


def _send_deadline_warnings(now) -> int:
    window_end = now + timedelta(minutes=settings.RESCHEDULE_WARNING_MINUTES)
    dedupe_since = now - timedelta(hours=settings.RESCHEDULE_WARNING_DEDUPE_HOURS)

    upcoming = RescheduleRequest.objects.filter(
        status=RescheduleStatus.PENDING,
        job__provider__isnull=False,
        job__reschedule_response_deadline__gt=now,
        job__reschedule_response_deadline__lte=window_end,
    ).select_related("job")[:BATCH_SIZE]

    warned = 0
    for request in upcoming:
        job = request.job
        link = f"/provider-portal/reschedule/{request.id}"
        try:
            if NotificationService.exists_since(
                job.provider_id,
                NotificationKind.TRANSFER_WARNING,
                link,
                dedupe_since,
            ):
                continue

            NotificationService.create_notification(
                recipient_id=job.provider_id,
                type=NotificationKind.TRANSFER_WARNING,
                title="Responde la reprogramación",
                message=(
                    f'El cliente pidió reprogramar "{job.title}". Si no respondes '
                    "pronto, el trabajo será reasignado."
                ),
                link=link,
                data={"job_id": str(job.id), "reschedule_id": str(request.id)},
            )
            warned += 1
        except Exception as e:
            logger.exception(
                f"Failed to send reschedule warning: {e}",
                extra={"reschedule_id": str(request.id)},
            )
    return warned
