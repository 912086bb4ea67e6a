"""
Pytest fixtures for job tests.
"""

import pytest

from authentication.context import AuthContext
from jobs.models import CompletionStatus, JobStatus
from jobs.tests.factories import JobFactory
from payments.tests.factories import InvoiceFactory


@pytest.fixture
def client_ctx(client_user):
    return AuthContext.for_user(client_user)


@pytest.fixture
def provider_ctx(provider_user):
    return AuthContext.for_user(provider_user)


@pytest.fixture
def in_progress_job(db, client_user, provider_user):
    return JobFactory(
        client=client_user,
        provider=provider_user,
        status=JobStatus.IN_PROGRESS,
        visit_fee_paid=True,
    )


@pytest.fixture
def paid_job(in_progress_job):
    """In-progress job whose invoice is paid."""
    InvoiceFactory(job=in_progress_job, paid=True)
    return in_progress_job


@pytest.fixture
def marked_done_job(paid_job):
    paid_job.completion_status = CompletionStatus.PROVIDER_MARKED_DONE
    paid_job.save(update_fields=["completion_status"])
    return paid_job


@pytest.fixture
def mock_release_delay(mocker):
    return mocker.patch("payments.tasks.release_escrow_for_job.delay")
