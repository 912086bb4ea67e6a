"""
Tests for JobCompletionService.

The handshake: provider_mark_done (invoice must be paid), then
client_confirm_completion which completes the job and queues escrow
release once the transaction commits.
"""

import uuid

import pytest

from authentication.context import AuthContext
from core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from jobs.models import CompletionStatus, JobMessage, JobStatus
from jobs.services import JobCompletionService
from notifications.models import Notification, NotificationKind
from payments.tests.factories import InvoiceFactory


@pytest.mark.django_db
class TestProviderMarkDone:
    def test_marks_done(self, paid_job, provider_ctx, client_user):
        result = JobCompletionService.provider_mark_done(provider_ctx, paid_job.id)

        assert result.success is True
        assert result.data["completion_status"] == "provider_marked_done"
        assert result.data["already_completed"] is False

        paid_job.refresh_from_db()
        assert paid_job.completion_status == CompletionStatus.PROVIDER_MARKED_DONE
        assert paid_job.completion_marked_at is not None

        message = JobMessage.objects.get(job=paid_job)
        assert message.is_system_message is True
        assert message.system_event_type == "provider_marked_done"

        notification = Notification.objects.get(recipient=client_user)
        assert notification.type == NotificationKind.JOB_COMPLETION_PENDING
        assert notification.data == {"job_id": str(paid_job.id)}

    def test_completed_job_can_be_marked(self, paid_job, provider_ctx):
        paid_job.status = JobStatus.COMPLETED
        paid_job.save(update_fields=["status"])

        result = JobCompletionService.provider_mark_done(provider_ctx, paid_job.id)

        assert result.data["already_completed"] is False

    def test_already_marked(self, marked_done_job, provider_ctx):
        result = JobCompletionService.provider_mark_done(provider_ctx, marked_done_job.id)

        assert result.data == {
            "completion_status": "provider_marked_done",
            "already_completed": True,
        }
        assert not JobMessage.objects.filter(job=marked_done_job).exists()

    def test_not_provider(self, paid_job, client_ctx):
        with pytest.raises(PermissionDeniedError) as exc_info:
            JobCompletionService.provider_mark_done(client_ctx, paid_job.id)

        assert exc_info.value.error_code == "NOT_JOB_PROVIDER"

    def test_job_not_in_progress(self, paid_job, provider_ctx):
        paid_job.status = JobStatus.ON_SITE
        paid_job.save(update_fields=["status"])

        with pytest.raises(ConflictError) as exc_info:
            JobCompletionService.provider_mark_done(provider_ctx, paid_job.id)

        assert exc_info.value.error_code == "JOB_NOT_IN_PROGRESS"

    def test_invoice_not_paid(self, in_progress_job, provider_ctx):
        InvoiceFactory(job=in_progress_job)

        with pytest.raises(ConflictError) as exc_info:
            JobCompletionService.provider_mark_done(provider_ctx, in_progress_job.id)

        assert exc_info.value.error_code == "INVOICE_NOT_PAID"

    def test_no_invoice(self, in_progress_job, provider_ctx):
        with pytest.raises(ConflictError):
            JobCompletionService.provider_mark_done(provider_ctx, in_progress_job.id)

    def test_anonymous(self, paid_job):
        with pytest.raises(AuthenticationError):
            JobCompletionService.provider_mark_done(AuthContext.anonymous(), paid_job.id)

    def test_unknown_job(self, provider_ctx):
        with pytest.raises(NotFoundError) as exc_info:
            JobCompletionService.provider_mark_done(provider_ctx, uuid.uuid4())

        assert exc_info.value.error_code == "JOB_NOT_FOUND"


@pytest.mark.django_db
class TestClientConfirmCompletion:
    def test_confirms_and_queues_release(
        self,
        marked_done_job,
        client_ctx,
        mock_release_delay,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            result = JobCompletionService.client_confirm_completion(
                client_ctx, marked_done_job.id
            )

        assert result.data["completion_status"] == "completed"
        assert result.data["already_completed"] is False

        marked_done_job.refresh_from_db()
        assert marked_done_job.status == JobStatus.COMPLETED
        assert marked_done_job.completion_status == CompletionStatus.COMPLETED
        assert marked_done_job.completion_confirmed_at is not None
        assert JobMessage.objects.filter(
            job=marked_done_job, system_event_type="completed"
        ).exists()
        mock_release_delay.assert_called_once_with(str(marked_done_job.id))

    @pytest.mark.parametrize(
        "completion_status",
        [CompletionStatus.COMPLETED, CompletionStatus.AUTO_COMPLETED],
    )
    def test_already_completed(
        self, marked_done_job, client_ctx, mock_release_delay, completion_status
    ):
        marked_done_job.completion_status = completion_status
        marked_done_job.save(update_fields=["completion_status"])

        result = JobCompletionService.client_confirm_completion(client_ctx, marked_done_job.id)

        assert result.data == {
            "completion_status": completion_status,
            "already_completed": True,
        }
        mock_release_delay.assert_not_called()

    def test_not_requested(self, paid_job, client_ctx, mock_release_delay):
        with pytest.raises(ConflictError) as exc_info:
            JobCompletionService.client_confirm_completion(client_ctx, paid_job.id)

        assert exc_info.value.error_code == "COMPLETION_NOT_REQUESTED"

    def test_not_client(self, marked_done_job, provider_ctx, mock_release_delay):
        with pytest.raises(PermissionDeniedError) as exc_info:
            JobCompletionService.client_confirm_completion(provider_ctx, marked_done_job.id)

        assert exc_info.value.error_code == "NOT_JOB_CLIENT"


@pytest.mark.django_db
class TestCompleteJob:
    def test_dispatches_provider_action(self, paid_job, provider_ctx):
        result = JobCompletionService.complete_job(
            provider_ctx, paid_job.id, "provider_mark_done"
        )

        assert result.data["completion_status"] == "provider_marked_done"

    def test_invalid_action(self, paid_job, provider_ctx):
        with pytest.raises(ValidationError) as exc_info:
            JobCompletionService.complete_job(provider_ctx, paid_job.id, "finish")

        assert exc_info.value.message == "Acción inválida"
        assert exc_info.value.error_code == "INVALID_ACTION"
