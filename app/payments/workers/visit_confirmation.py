"""
Visit confirmation timeout worker.

After the provider confirms a visit the client has
VISIT_CONFIRMATION_HOURS to confirm or dispute it. Jobs whose deadline
passed without an answer are escalated to support.

Tasks:
- check_visit_confirmations: Periodic sweep (every 15 minutes via celery beat)
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from jobs.models import Job, VisitDisputeStatus
from notifications.models import NotificationKind
from notifications.services import NotificationService
from payments.locks import compare_and_set, single_flight

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BATCH_SIZE = 100
SWEEP_LOCK_TTL = 600

ESCALATION_REASON = "Cliente no respondió dentro del tiempo límite (48h)"


# =============================================================================
# Periodic Task
# =============================================================================


@shared_task(bind=True)
def check_visit_confirmations(self) -> dict:
    """
    Escalate visits whose client confirmation deadline expired.

    A job is escalated at most once: the selection filter excludes jobs that
    already have a dispute status, and the conditional update re-checks it.

    Returns:
        Dict with processed and total counts, or {"skipped": True}
    """
    with single_flight("sweep:check_visit_confirmations", ttl=SWEEP_LOCK_TTL) as acquired:
        if not acquired:
            logger.info("Visit confirmation sweep already running, skipping")
            return {"skipped": True}

        now = timezone.now()
        jobs = list(
            Job.objects.filter(
                provider_confirmed_visit=True,
                client_confirmed_visit=False,
                visit_dispute_status__isnull=True,
                visit_confirmation_deadline__lt=now,
            ).order_by("visit_confirmation_deadline")[:BATCH_SIZE]
        )

        processed = 0
        for job in jobs:
            try:
                escalated = compare_and_set(
                    Job,
                    job.id,
                    {
                        "visit_dispute_status__isnull": True,
                        "client_confirmed_visit": False,
                    },
                    visit_dispute_status=VisitDisputeStatus.PENDING_SUPPORT,
                    visit_dispute_reason=ESCALATION_REASON,
                )
                if not escalated:
                    continue

                _notify_escalation(job)
                processed += 1

                logger.info(
                    "Visit confirmation escalated to support",
                    extra={"job_id": str(job.id)},
                )
            except Exception as e:
                logger.exception(
                    f"Failed to escalate visit confirmation: {e}",
                    extra={"job_id": str(job.id)},
                )

    logger.info(
        f"Visit confirmation sweep complete: {processed}/{len(jobs)} jobs",
        extra={"processed": processed, "total": len(jobs)},
    )
    return {"processed": processed, "total": len(jobs)}


def _notify_escalation(job: Job) -> None:
    data = {"job_id": str(job.id)}

    NotificationService.notify_admins(
        type=NotificationKind.VISIT_CONFIRMATION_EXPIRED,
        title="Confirmación de visita expirada",
        message=(
            f'El cliente no confirmó la visita para "{job.title}" dentro del tiempo '
            "límite. Requiere revisión manual."
        ),
        link="/admin-dashboard",
        data=data,
    )
    NotificationService.create_notification(
        recipient_id=job.client_id,
        type=NotificationKind.VISIT_CONFIRMATION_ESCALATED,
        title="Tu confirmación ha sido escalada",
        message=(
            f'No confirmaste la visita para "{job.title}" a tiempo. '
            "El caso ha sido enviado al equipo de soporte."
        ),
        data=data,
    )
    if job.provider_id:
        NotificationService.create_notification(
            recipient_id=job.provider_id,
            type=NotificationKind.VISIT_CONFIRMATION_ESCALATED,
            title="Caso escalado a soporte",
            message=(
                f'El cliente no confirmó la visita para "{job.title}" a tiempo. '
                "El equipo de soporte revisará el caso."
            ),
            data=data,
        )


__all__ = [
    "check_visit_confirmations",
]
