"""
Pytest fixtures for payment tests.

Fixtures provide jobs and invoices at the points of the payment lifecycle
the services act on, plus a patched StripeAdapter per service module.

Usage:
    def test_capture(provider_confirmed_job, visit_stripe):
        visit_stripe.retrieve_status.return_value = snapshot("requires_capture")
        ...
"""

import pytest
from django.utils import timezone

from authentication.context import AuthContext
from jobs.models import JobStatus
from jobs.tests.factories import JobFactory
from payments.adapters import (
    AuthorizationResult,
    CheckoutSessionResult,
    TransferResult,
)
from payments.tests.factories import (
    InvoiceFactory,
    ProviderPayoutAccountFactory,
    snapshot,
)


# =============================================================================
# Auth Contexts
# =============================================================================


@pytest.fixture
def client_ctx(client_user):
    return AuthContext.for_user(client_user)


@pytest.fixture
def provider_ctx(provider_user):
    return AuthContext.for_user(provider_user)


@pytest.fixture
def admin_ctx(admin_user):
    return AuthContext.for_user(admin_user)


# =============================================================================
# Jobs
# =============================================================================


@pytest.fixture
def job(db, client_user, provider_user):
    """Assigned job without a visit fee authorization."""
    return JobFactory(client=client_user, provider=provider_user)


@pytest.fixture
def authorized_job(db, client_user, provider_user):
    """Job whose visit fee is held on the client's card."""
    return JobFactory(
        client=client_user,
        provider=provider_user,
        stripe_visit_payment_intent_id="pi_visit_123",
    )


@pytest.fixture
def provider_confirmed_job(db, client_user, provider_user):
    """Authorized job whose provider confirmed the visit."""
    return JobFactory(
        client=client_user,
        provider=provider_user,
        stripe_visit_payment_intent_id="pi_visit_123",
        provider_confirmed_visit=True,
        visit_confirmation_deadline=timezone.now() + timezone.timedelta(hours=48),
    )


@pytest.fixture
def in_progress_job(db, client_user, provider_user):
    return JobFactory(
        client=client_user,
        provider=provider_user,
        status=JobStatus.IN_PROGRESS,
        visit_fee_paid=True,
    )


# =============================================================================
# Invoices and Accounts
# =============================================================================


@pytest.fixture
def pending_invoice(db, in_progress_job):
    return InvoiceFactory(job=in_progress_job)


@pytest.fixture
def paid_invoice(db, in_progress_job):
    return InvoiceFactory(job=in_progress_job, paid=True)


@pytest.fixture
def payout_account(db, provider_user):
    """Enabled Connect account for provider_user."""
    return ProviderPayoutAccountFactory(
        profile=provider_user.profile,
        stripe_account_id="acct_provider_123",
    )


# =============================================================================
# Stripe Adapter Mocks
# =============================================================================


def _configure_adapter(mock):
    mock.ensure_customer.return_value = "cus_test_123"
    mock.create_authorization.return_value = AuthorizationResult(
        reference_id="pi_visit_new",
        client_secret="pi_visit_new_secret_abc",
        status="requires_payment_method",
    )
    mock.create_invoice_charge.return_value = AuthorizationResult(
        reference_id="pi_invoice_new",
        client_secret="pi_invoice_new_secret_abc",
        status="requires_payment_method",
    )
    mock.create_checkout_session.return_value = CheckoutSessionResult(
        session_id="cs_test_123",
        url="https://checkout.stripe.com/c/pay/cs_test_123",
    )
    mock.create_transfer.return_value = TransferResult(
        transfer_id="tr_test_123",
        amount_cents=90000,
        currency="mxn",
        destination_account="acct_provider_123",
    )
    mock.find_transfer.return_value = None
    mock.retrieve_status.return_value = snapshot("requires_capture")
    mock.capture.return_value = snapshot("succeeded")
    mock.cancel.return_value = snapshot("canceled")
    return mock


@pytest.fixture
def visit_stripe(mocker):
    """StripeAdapter as seen by VisitAuthorizationService."""
    return _configure_adapter(
        mocker.patch("payments.services.visit_authorization_service.StripeAdapter")
    )


@pytest.fixture
def invoice_stripe(mocker):
    """StripeAdapter as seen by InvoiceService."""
    return _configure_adapter(mocker.patch("payments.services.invoice_service.StripeAdapter"))


@pytest.fixture
def escrow_stripe(mocker):
    """StripeAdapter as seen by EscrowReleaseService."""
    return _configure_adapter(
        mocker.patch("payments.services.escrow_release_service.StripeAdapter")
    )


@pytest.fixture
def mock_release_delay(mocker):
    """Patch release_escrow_for_job.delay so nothing is queued."""
    return mocker.patch("payments.tasks.release_escrow_for_job.delay")
