"""
Tests for the periodic reconciliation sweeps.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from jobs.models import CompletionStatus, JobMessage, JobStatus, VisitDisputeStatus
from jobs.tests.factories import JobFactory
from notifications.models import Notification, NotificationKind
from payments.workers import auto_complete_jobs, check_visit_confirmations
from payments.workers.visit_confirmation import ESCALATION_REASON


# =============================================================================
# auto_complete_jobs
# =============================================================================


@pytest.mark.django_db
class TestAutoCompleteJobs:
    @pytest.fixture
    def stale_job(self, client_user, provider_user):
        return JobFactory(
            client=client_user,
            provider=provider_user,
            status=JobStatus.IN_PROGRESS,
            completion_status=CompletionStatus.PROVIDER_MARKED_DONE,
            completion_marked_at=timezone.now() - timedelta(hours=25),
        )

    def test_completes_stale_job_and_queues_release(
        self, stale_job, mock_release_delay, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            result = auto_complete_jobs()

        assert result == {"processed": 1, "total": 1}
        stale_job.refresh_from_db()
        assert stale_job.status == JobStatus.COMPLETED
        assert stale_job.completion_status == CompletionStatus.AUTO_COMPLETED
        assert stale_job.completion_confirmed_at is not None
        mock_release_delay.assert_called_once_with(str(stale_job.id))

    def test_posts_system_message(self, stale_job, mock_release_delay):
        auto_complete_jobs()

        message = JobMessage.objects.get(job=stale_job)
        assert message.is_system_message is True
        assert message.system_event_type == "auto_completed"
        assert message.sender is None

    def test_ignores_recent_marks(self, provider_user, mock_release_delay):
        JobFactory(
            provider=provider_user,
            completion_status=CompletionStatus.PROVIDER_MARKED_DONE,
            completion_marked_at=timezone.now() - timedelta(hours=23),
        )

        result = auto_complete_jobs()

        assert result == {"processed": 0, "total": 0}
        mock_release_delay.assert_not_called()

    def test_ignores_confirmed_jobs(self, mock_release_delay):
        JobFactory(
            completion_status=CompletionStatus.COMPLETED,
            completion_marked_at=timezone.now() - timedelta(days=3),
        )

        assert auto_complete_jobs()["total"] == 0

    def test_second_run_does_nothing(
        self, stale_job, mock_release_delay, django_capture_on_commit_callbacks
    ):
        """Escrow release is queued exactly once per job."""
        with django_capture_on_commit_callbacks(execute=True):
            auto_complete_jobs()
        with django_capture_on_commit_callbacks(execute=True):
            result = auto_complete_jobs()

        assert result == {"processed": 0, "total": 0}
        mock_release_delay.assert_called_once()

    def test_window_from_settings(self, stale_job, mock_release_delay, settings):
        settings.AUTO_COMPLETE_HOURS = 48

        assert auto_complete_jobs()["total"] == 0

    def test_skipped_when_lock_held(self, stale_job, mock_release_delay, redis_connection):
        redis_connection.set.return_value = False

        result = auto_complete_jobs()

        assert result == {"skipped": True}
        stale_job.refresh_from_db()
        assert stale_job.completion_status == CompletionStatus.PROVIDER_MARKED_DONE

    def test_per_job_error_does_not_abort_batch(
        self,
        stale_job,
        provider_user,
        mock_release_delay,
        mocker,
        django_capture_on_commit_callbacks,
    ):
        older_job = JobFactory(
            provider=provider_user,
            completion_status=CompletionStatus.PROVIDER_MARKED_DONE,
            completion_marked_at=timezone.now() - timedelta(hours=30),
        )
        mocker.patch(
            "payments.workers.auto_complete.JobMessage.post_system_message",
            side_effect=[RuntimeError("chat down"), None],
        )

        with django_capture_on_commit_callbacks(execute=True):
            result = auto_complete_jobs()

        assert result == {"processed": 1, "total": 2}
        mock_release_delay.assert_called_once_with(str(stale_job.id))

    def test_failed_job_is_left_for_the_next_run(
        self, stale_job, mock_release_delay, mocker, django_capture_on_commit_callbacks
    ):
        mocker.patch(
            "payments.workers.auto_complete.JobMessage.post_system_message",
            side_effect=[RuntimeError("chat down"), None],
        )

        with django_capture_on_commit_callbacks(execute=True):
            first = auto_complete_jobs()

        assert first == {"processed": 0, "total": 1}
        stale_job.refresh_from_db()
        assert stale_job.status == JobStatus.IN_PROGRESS
        assert stale_job.completion_status == CompletionStatus.PROVIDER_MARKED_DONE
        mock_release_delay.assert_not_called()

        with django_capture_on_commit_callbacks(execute=True):
            second = auto_complete_jobs()

        assert second == {"processed": 1, "total": 1}
        stale_job.refresh_from_db()
        assert stale_job.completion_status == CompletionStatus.AUTO_COMPLETED
        mock_release_delay.assert_called_once_with(str(stale_job.id))


# =============================================================================
# check_visit_confirmations
# =============================================================================


@pytest.mark.django_db
class TestCheckVisitConfirmations:
    @pytest.fixture
    def expired_job(self, client_user, provider_user):
        return JobFactory(
            client=client_user,
            provider=provider_user,
            stripe_visit_payment_intent_id="pi_visit_123",
            provider_confirmed_visit=True,
            visit_confirmation_deadline=timezone.now() - timedelta(minutes=5),
        )

    def test_escalates_expired_confirmation(self, expired_job, admin_user):
        result = check_visit_confirmations()

        assert result == {"processed": 1, "total": 1}
        expired_job.refresh_from_db()
        assert expired_job.visit_dispute_status == VisitDisputeStatus.PENDING_SUPPORT
        assert expired_job.visit_dispute_reason == ESCALATION_REASON

    def test_notifies_admins_and_parties(self, expired_job, admin_user):
        check_visit_confirmations()

        assert Notification.objects.filter(
            recipient=admin_user, type=NotificationKind.VISIT_CONFIRMATION_EXPIRED
        ).exists()
        escalated = Notification.objects.filter(
            type=NotificationKind.VISIT_CONFIRMATION_ESCALATED
        )
        assert set(escalated.values_list("recipient_id", flat=True)) == {
            expired_job.client_id,
            expired_job.provider_id,
        }

    def test_no_payment_calls(self, expired_job, visit_stripe):
        check_visit_confirmations()

        visit_stripe.capture.assert_not_called()
        visit_stripe.cancel.assert_not_called()

    @freeze_time("2026-05-01 12:00:00")
    def test_deadline_not_reached(self, client_user, provider_user):
        JobFactory(
            client=client_user,
            provider=provider_user,
            provider_confirmed_visit=True,
            visit_confirmation_deadline=timezone.now() + timedelta(hours=1),
        )

        assert check_visit_confirmations() == {"processed": 0, "total": 0}

    def test_client_confirmed_not_escalated(self, expired_job):
        expired_job.client_confirmed_visit = True
        expired_job.save()

        assert check_visit_confirmations()["total"] == 0

    def test_escalated_once(self, expired_job):
        check_visit_confirmations()
        result = check_visit_confirmations()

        assert result == {"processed": 0, "total": 0}
        assert (
            Notification.objects.filter(
                recipient=expired_job.client,
                type=NotificationKind.VISIT_CONFIRMATION_ESCALATED,
            ).count()
            == 1
        )

    def test_skipped_when_lock_held(self, expired_job, redis_connection):
        redis_connection.set.return_value = False

        assert check_visit_confirmations() == {"skipped": True}
