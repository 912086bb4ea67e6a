"""
Auto-complete worker for jobs the client never confirmed.

When the provider marks a job done and the client does not confirm within
AUTO_COMPLETE_HOURS, the job is completed on the client's behalf and the
escrowed invoice funds are released.

Tasks:
- auto_complete_jobs: Periodic sweep (every 15 minutes via celery beat)

Usage:
    from payments.workers import auto_complete_jobs

    auto_complete_jobs.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from jobs.models import CompletionStatus, Job, JobMessage, JobStatus
from payments.locks import compare_and_set, single_flight

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum jobs to process per run (prevents memory issues)
BATCH_SIZE = 100

# Single-flight lock TTL (seconds)
SWEEP_LOCK_TTL = 600

AUTO_COMPLETED_MESSAGE = (
    "⏰ El trabajo fue completado automáticamente tras 24 horas sin respuesta del cliente."
)


# =============================================================================
# Periodic Task
# =============================================================================


@shared_task(bind=True)
def auto_complete_jobs(self) -> dict:
    """
    Complete jobs stuck in provider_marked_done past the confirmation window.

    For each job:
    1. Conditional update to completed / auto_completed
    2. System chat message (system_event_type "auto_completed")
    3. Escrow release queued on commit, exactly once (only the run whose
       update succeeded queues it)

    Steps 1 and 2 share a transaction: if the message fails the job stays
    provider_marked_done and the next run picks it up again.

    Per-job errors are logged and do not abort the batch.

    Returns:
        Dict with processed and total counts, or {"skipped": True} when
        another worker holds the sweep lock
    """
    from payments.tasks import release_escrow_for_job

    with single_flight("sweep:auto_complete_jobs", ttl=SWEEP_LOCK_TTL) as acquired:
        if not acquired:
            logger.info("Auto-complete sweep already running, skipping")
            return {"skipped": True}

        now = timezone.now()
        cutoff = now - timedelta(hours=settings.AUTO_COMPLETE_HOURS)

        job_ids = list(
            Job.objects.filter(
                completion_status=CompletionStatus.PROVIDER_MARKED_DONE,
                completion_marked_at__lt=cutoff,
            )
            .order_by("completion_marked_at")
            .values_list("id", flat=True)[:BATCH_SIZE]
        )

        logger.info(
            "Starting auto-complete sweep",
            extra={"candidates": len(job_ids), "cutoff": cutoff.isoformat()},
        )

        processed = 0
        for job_id in job_ids:
            try:
                with transaction.atomic():
                    completed = compare_and_set(
                        Job,
                        job_id,
                        {"completion_status": CompletionStatus.PROVIDER_MARKED_DONE},
                        status=JobStatus.COMPLETED,
                        completion_status=CompletionStatus.AUTO_COMPLETED,
                        completion_confirmed_at=now,
                    )
                    if not completed:
                        logger.info(
                            "Job changed before auto-complete, skipping",
                            extra={"job_id": str(job_id)},
                        )
                        continue

                    JobMessage.post_system_message(
                        job_id,
                        AUTO_COMPLETED_MESSAGE,
                        event_type=CompletionStatus.AUTO_COMPLETED,
                    )
                    transaction.on_commit(
                        lambda job_id=job_id: release_escrow_for_job.delay(str(job_id))
                    )
                processed += 1

                logger.info(
                    "Job auto-completed",
                    extra={"job_id": str(job_id)},
                )
            except Exception as e:
                logger.exception(
                    f"Failed to auto-complete job: {e}",
                    extra={"job_id": str(job_id)},
                )

    logger.info(
        f"Auto-complete sweep complete: {processed}/{len(job_ids)} jobs",
        extra={"processed": processed, "total": len(job_ids)},
    )
    return {"processed": processed, "total": len(job_ids)}


__all__ = [
    "auto_complete_jobs",
]
