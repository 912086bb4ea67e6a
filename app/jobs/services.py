"""
Job completion handshake.

The provider marks the work done, then the client confirms it. Confirmation
completes the job and queues escrow release of the paid invoice. If the
client never answers, payments.workers.auto_complete_jobs completes the job
after AUTO_COMPLETE_HOURS.

Usage:
    from jobs.services import JobCompletionService

    JobCompletionService.provider_mark_done(ctx, job_id)
    JobCompletionService.client_confirm_completion(ctx, job_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from core.services import BaseService, ServiceResult
from jobs.models import CompletionStatus, Job, JobMessage, JobStatus
from jobs.selectors import get_job_or_404
from notifications.models import NotificationKind
from notifications.services import NotificationService
from payments.locks import compare_and_set
from payments.models import Invoice
from payments.state_machines import PAID_INVOICE_STATUSES

if TYPE_CHECKING:
    from authentication.context import AuthContext

PROVIDER_MARKED_DONE_MESSAGE = (
    "✅ El proveedor indicó que el trabajo fue terminado. Por favor confirma."
)
CLIENT_CONFIRMED_MESSAGE = (
    "🎉 El cliente confirmó que el trabajo fue completado. ¡Pago en camino!"
)

# The invoice payment webhook completes the job, so a provider may mark the
# work done on a job that is already completed.
MARKABLE_JOB_STATUSES = (JobStatus.IN_PROGRESS, JobStatus.COMPLETED)

FINISHED_COMPLETION_STATUSES = (
    CompletionStatus.COMPLETED,
    CompletionStatus.AUTO_COMPLETED,
)

# complete/ endpoint actions
PROVIDER_MARK_DONE = "provider_mark_done"
CLIENT_CONFIRM = "client_confirm"
COMPLETION_ACTIONS = (PROVIDER_MARK_DONE, CLIENT_CONFIRM)


class JobCompletionService(BaseService):
    """
    Service for the work completion handshake.

    Methods:
        provider_mark_done: Provider says the work is finished
        client_confirm_completion: Client confirms; escrow release is queued
        complete_job: Dispatch by action name (complete/ endpoint)
    """

    @classmethod
    def complete_job(cls, ctx: AuthContext, job_id, action: str) -> ServiceResult[dict]:
        """
        Raises:
            ValidationError: action is not provider_mark_done or client_confirm
        """
        if action == PROVIDER_MARK_DONE:
            return cls.provider_mark_done(ctx, job_id)
        if action == CLIENT_CONFIRM:
            return cls.client_confirm_completion(ctx, job_id)
        raise ValidationError(
            "Acción inválida",
            error_code="INVALID_ACTION",
            details={"action": action, "allowed": list(COMPLETION_ACTIONS)},
        )

    @classmethod
    def provider_mark_done(cls, ctx: AuthContext, job_id) -> ServiceResult[dict]:
        """
        Mark the work done and ask the client to confirm.

        Raises:
            PermissionDeniedError: Caller is not the assigned provider
            ConflictError: Job not in progress or invoice not paid
        """
        ctx.require_authenticated()
        job = get_job_or_404(job_id)

        if not job.is_provider(ctx.user_id):
            raise PermissionDeniedError(
                "Solo el proveedor asignado puede marcar el trabajo como terminado",
                error_code="NOT_JOB_PROVIDER",
            )

        if job.completion_status is not None:
            return ServiceResult.success(
                {
                    "completion_status": job.completion_status,
                    "already_completed": True,
                }
            )

        if job.status not in MARKABLE_JOB_STATUSES:
            raise ConflictError(
                "El trabajo no está en progreso",
                error_code="JOB_NOT_IN_PROGRESS",
                details={"status": job.status},
            )

        if not Invoice.objects.filter(job_id=job.id, status__in=PAID_INVOICE_STATUSES).exists():
            raise ConflictError(
                "La factura del trabajo aún no ha sido pagada",
                error_code="INVOICE_NOT_PAID",
            )

        now = timezone.now()
        with cls.atomic():
            marked = compare_and_set(
                Job,
                job.id,
                {"completion_status__isnull": True},
                completion_status=CompletionStatus.PROVIDER_MARKED_DONE,
                completion_marked_at=now,
            )
            if not marked:
                job.refresh_from_db(fields=["completion_status"])
                return ServiceResult.success(
                    {
                        "completion_status": job.completion_status,
                        "already_completed": True,
                    }
                )

            JobMessage.post_system_message(
                job.id,
                PROVIDER_MARKED_DONE_MESSAGE,
                event_type=CompletionStatus.PROVIDER_MARKED_DONE,
            )

        NotificationService.create_notification(
            recipient_id=job.client_id,
            type=NotificationKind.JOB_COMPLETION_PENDING,
            title="Confirma tu trabajo",
            message="El proveedor terminó el trabajo. Confirma para liberar el pago.",
            link="/active-jobs",
            data={"job_id": str(job.id)},
        )

        cls.get_logger().info(
            "Provider marked job done",
            extra={"job_id": str(job.id), "provider_id": ctx.user_id},
        )
        return ServiceResult.success(
            {
                "completion_status": CompletionStatus.PROVIDER_MARKED_DONE,
                "completion_marked_at": now.isoformat(),
                "already_completed": False,
            }
        )

    @classmethod
    def client_confirm_completion(cls, ctx: AuthContext, job_id) -> ServiceResult[dict]:
        """
        Confirm the work and queue escrow release.

        Raises:
            PermissionDeniedError: Caller is not the job's client
            ConflictError: Provider has not marked the work done
        """
        from payments.tasks import release_escrow_for_job

        ctx.require_authenticated()
        job = get_job_or_404(job_id)

        if not job.is_client(ctx.user_id):
            raise PermissionDeniedError(
                "Solo el cliente puede confirmar el trabajo",
                error_code="NOT_JOB_CLIENT",
            )

        if job.completion_status in FINISHED_COMPLETION_STATUSES:
            return ServiceResult.success(
                {
                    "completion_status": job.completion_status,
                    "already_completed": True,
                }
            )

        if job.completion_status != CompletionStatus.PROVIDER_MARKED_DONE:
            raise ConflictError(
                "El proveedor aún no ha marcado el trabajo como terminado",
                error_code="COMPLETION_NOT_REQUESTED",
            )

        now = timezone.now()
        with cls.atomic():
            confirmed = compare_and_set(
                Job,
                job.id,
                {"completion_status": CompletionStatus.PROVIDER_MARKED_DONE},
                completion_status=CompletionStatus.COMPLETED,
                completion_confirmed_at=now,
                status=JobStatus.COMPLETED,
            )
            if not confirmed:
                job.refresh_from_db(fields=["completion_status"])
                return ServiceResult.success(
                    {
                        "completion_status": job.completion_status,
                        "already_completed": True,
                    }
                )

            JobMessage.post_system_message(
                job.id,
                CLIENT_CONFIRMED_MESSAGE,
                event_type=CompletionStatus.COMPLETED,
            )
            transaction.on_commit(lambda: release_escrow_for_job.delay(str(job.id)))

        cls.get_logger().info(
            "Client confirmed job completion",
            extra={"job_id": str(job.id), "client_id": ctx.user_id},
        )
        return ServiceResult.success(
            {
                "completion_status": CompletionStatus.COMPLETED,
                "completion_confirmed_at": now.isoformat(),
                "already_completed": False,
            }
        )
