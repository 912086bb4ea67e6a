"""
Tests for the payments API views.

Views are thin; these tests cover routing, request validation, the
response envelope and status codes. Service behavior is covered in the
service test modules.
"""

import uuid

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from jobs.models import JobStatus
from jobs.tests.factories import JobFactory
from payments.exceptions import GatewayUnavailableError
from payments.state_machines import InvoiceStatus
from payments.tests.factories import InvoiceFactory, PayoutFactory

BASE_URL = "/api/v1/payments"


@pytest.fixture
def client_api(authenticated_client_factory, client_user):
    return authenticated_client_factory(client_user)


@pytest.fixture
def provider_api(authenticated_client_factory, provider_user):
    return authenticated_client_factory(provider_user)


@pytest.fixture
def admin_api(authenticated_client_factory, admin_user):
    return authenticated_client_factory(admin_user)


# =============================================================================
# Authentication
# =============================================================================


@pytest.mark.django_db
class TestAuthenticationRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("post", "/visit-authorization/"),
            ("post", "/visit-confirmation/"),
            ("post", "/invoices/"),
            ("get", f"/jobs/{uuid.uuid4()}/status/"),
            ("get", "/admin/payouts/"),
            ("get", "/payouts/"),
            ("get", "/earnings/"),
            ("get", "/invoices/client/"),
        ],
    )
    def test_anonymous_rejected(self, method, path):
        response = getattr(APIClient(), method)(f"{BASE_URL}{path}")

        assert response.status_code == 401
        assert response.data["success"] is False
        assert response.data["error_code"] == "UNAUTHENTICATED"


# =============================================================================
# Visit Fee
# =============================================================================


@pytest.mark.django_db
class TestVisitAuthorizationView:
    def test_create(self, client_api, job, visit_stripe):
        response = client_api.post(
            f"{BASE_URL}/visit-authorization/", {"job_id": str(job.id)}, format="json"
        )

        assert response.status_code == 200
        assert response.data == {
            "success": True,
            "client_secret": "pi_visit_new_secret_abc",
            "payment_intent_id": "pi_visit_new",
            "status": "requires_payment_method",
            "already_exists": False,
        }

    def test_invalid_job_id(self, client_api, visit_stripe):
        response = client_api.post(
            f"{BASE_URL}/visit-authorization/", {"job_id": "abc"}, format="json"
        )

        assert response.status_code == 400
        assert response.data["error"] == "Datos inválidos"
        assert "job_id" in response.data["errors"]

    def test_not_client(self, provider_api, job, visit_stripe):
        response = provider_api.post(
            f"{BASE_URL}/visit-authorization/", {"job_id": str(job.id)}, format="json"
        )

        assert response.status_code == 403
        assert response.data["error_code"] == "NOT_JOB_CLIENT"

    def test_unknown_job(self, client_api, visit_stripe):
        response = client_api.post(
            f"{BASE_URL}/visit-authorization/", {"job_id": str(uuid.uuid4())}, format="json"
        )

        assert response.status_code == 404
        assert response.data["error"] == "Trabajo no encontrado"

    def test_gateway_error_is_502_without_details(self, client_api, job, visit_stripe):
        visit_stripe.create_authorization.side_effect = GatewayUnavailableError(
            "Stripe unavailable", gateway_code="api_error"
        )

        response = client_api.post(
            f"{BASE_URL}/visit-authorization/", {"job_id": str(job.id)}, format="json"
        )

        assert response.status_code == 502
        assert response.data["error_code"] == "GATEWAY_UNAVAILABLE"
        assert "details" not in response.data

    def test_status(self, client_api, authorized_job, visit_stripe):
        response = client_api.get(f"{BASE_URL}/visit-authorization/{authorized_job.id}/")

        assert response.status_code == 200
        assert response.data["status"] == "authorized"
        assert response.data["amount"] == 35000


@pytest.mark.django_db
class TestVisitConfirmationView:
    def test_provider_confirm(self, provider_api, authorized_job):
        response = provider_api.post(
            f"{BASE_URL}/visit-confirmation/",
            {"job_id": str(authorized_job.id), "action": "provider_confirm"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["success"] is True
        assert response.data["already_confirmed"] is False

    def test_invalid_action(self, client_api, authorized_job):
        response = client_api.post(
            f"{BASE_URL}/visit-confirmation/",
            {"job_id": str(authorized_job.id), "action": "approve"},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error"] == "Acción inválida"
        assert response.data["error_code"] == "INVALID_ACTION"

    def test_admin_resolution_forbidden_for_client(self, client_api, provider_confirmed_job):
        response = client_api.post(
            f"{BASE_URL}/visit-confirmation/",
            {"job_id": str(provider_confirmed_job.id), "action": "admin_resolve_capture"},
            format="json",
        )

        assert response.status_code == 403
        assert response.data["error"] == "Forbidden: Admin access required"

    def test_client_confirm_before_provider(self, client_api, authorized_job):
        response = client_api.post(
            f"{BASE_URL}/visit-confirmation/",
            {"job_id": str(authorized_job.id), "action": "client_confirm"},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["error_code"] == "PROVIDER_NOT_CONFIRMED"


# =============================================================================
# Invoices
# =============================================================================


@pytest.mark.django_db
class TestInvoiceViews:
    def test_create_returns_201(self, provider_api, in_progress_job, invoice_stripe):
        response = provider_api.post(
            f"{BASE_URL}/invoices/",
            {
                "job_id": str(in_progress_job.id),
                "line_items": [{"description": "Mano de obra", "amount": 100000, "quantity": 1}],
            },
            format="json",
        )

        assert response.status_code == 201
        assert response.data["invoice"]["total_customer_amount"] == 110000
        assert response.data["already_exists"] is False

    def test_existing_returns_200(self, provider_api, pending_invoice, invoice_stripe):
        response = provider_api.post(
            f"{BASE_URL}/invoices/", {"job_id": str(pending_invoice.job_id)}, format="json"
        )

        assert response.status_code == 200
        assert response.data["already_exists"] is True

    def test_empty_line_items(self, provider_api, in_progress_job, invoice_stripe):
        response = provider_api.post(
            f"{BASE_URL}/invoices/",
            {"job_id": str(in_progress_job.id), "line_items": []},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["error_code"] == "LINE_ITEMS_REQUIRED"

    def test_checkout(self, client_api, pending_invoice, invoice_stripe):
        response = client_api.post(f"{BASE_URL}/invoices/{pending_invoice.id}/checkout/")

        assert response.status_code == 200
        assert response.data["checkout_url"] == "https://checkout.stripe.com/c/pay/cs_test_123"
        assert response.data["session_id"] == "cs_test_123"

    def test_checkout_paid_invoice(self, client_api, paid_invoice, invoice_stripe):
        response = client_api.post(f"{BASE_URL}/invoices/{paid_invoice.id}/checkout/")

        assert response.status_code == 409
        assert response.data["details"] == {"status": "paid"}

    def test_detail_for_client(self, client_api, pending_invoice, invoice_stripe):
        response = client_api.get(f"{BASE_URL}/invoices/{pending_invoice.id}/")

        assert response.status_code == 200
        assert response.data["invoice"]["id"] == str(pending_invoice.id)
        assert response.data["client_secret"] == "pi_visit_123_secret_abc"

    def test_detail_outsider_forbidden(
        self, authenticated_client_factory, pending_invoice, invoice_stripe
    ):
        api = authenticated_client_factory(UserFactory())

        response = api.get(f"{BASE_URL}/invoices/{pending_invoice.id}/")

        assert response.status_code == 403
        assert response.data["error_code"] == "NOT_INVOICE_PARTY"

    def test_client_list(self, client_api, pending_invoice):
        response = client_api.get(f"{BASE_URL}/invoices/client/")

        assert response.status_code == 200
        assert [row["id"] for row in response.data["invoices"]] == [str(pending_invoice.id)]

    def test_provider_list(self, provider_api, client_api, pending_invoice):
        provider_response = provider_api.get(f"{BASE_URL}/invoices/provider/")
        client_response = client_api.get(f"{BASE_URL}/invoices/provider/")

        assert [row["id"] for row in provider_response.data["invoices"]] == [
            str(pending_invoice.id)
        ]
        assert client_response.data["invoices"] == []


# =============================================================================
# Job Payment Status
# =============================================================================


@pytest.mark.django_db
class TestJobPaymentStatusView:
    def test_customer_labels(self, client_api, authorized_job):
        response = client_api.get(f"{BASE_URL}/jobs/{authorized_job.id}/status/")

        assert response.status_code == 200
        assert response.data == {
            "success": True,
            "job_id": str(authorized_job.id),
            "role": "customer",
            "visit_fee": "authorized",
            "visit_fee_label": "Visita autorizada",
            "invoice": "none",
            "invoice_label": "",
        }

    def test_provider_labels(self, provider_api, in_progress_job):
        InvoiceFactory(job=in_progress_job, status=InvoiceStatus.PENDING)

        response = provider_api.get(f"{BASE_URL}/jobs/{in_progress_job.id}/status/")

        assert response.data["role"] == "provider"
        assert response.data["visit_fee"] == "captured"
        assert response.data["visit_fee_label"] == "Pago confirmado"
        assert response.data["invoice"] == "pending"
        assert response.data["invoice_label"] == "Factura enviada"

    def test_admin_sees_provider_labels(self, admin_api, job):
        response = admin_api.get(f"{BASE_URL}/jobs/{job.id}/status/")

        assert response.data["role"] == "provider"
        assert response.data["visit_fee_label"] == "Pago no asegurado"

    def test_outsider_forbidden(self, authenticated_client_factory, job):
        api = authenticated_client_factory(UserFactory())

        response = api.get(f"{BASE_URL}/jobs/{job.id}/status/")

        assert response.status_code == 403
        assert response.data["error_code"] == "NOT_JOB_PARTY"


# =============================================================================
# Provider Payouts and Earnings
# =============================================================================


@pytest.mark.django_db
class TestProviderPayoutViews:
    def test_list(self, provider_api, paid_invoice):
        payout = PayoutFactory(invoice=paid_invoice)
        PayoutFactory()

        response = provider_api.get(f"{BASE_URL}/payouts/")

        assert response.status_code == 200
        assert [row["id"] for row in response.data["payouts"]] == [str(payout.id)]
        assert response.data["summary"]["pending_amount"] == 90000

    def test_detail(self, provider_api, paid_invoice):
        payout = PayoutFactory(invoice=paid_invoice)

        response = provider_api.get(f"{BASE_URL}/payouts/{payout.id}/")

        assert response.status_code == 200
        assert response.data["payout"]["id"] == str(payout.id)
        assert response.data["client"] is None

    def test_detail_other_provider_forbidden(self, provider_api):
        payout = PayoutFactory()

        response = provider_api.get(f"{BASE_URL}/payouts/{payout.id}/")

        assert response.status_code == 403
        assert response.data["error_code"] == "NOT_PAYOUT_OWNER"

    def test_detail_unknown_payout(self, provider_api):
        response = provider_api.get(f"{BASE_URL}/payouts/{uuid.uuid4()}/")

        assert response.status_code == 404
        assert response.data["error_code"] == "PAYOUT_NOT_FOUND"

    def test_earnings(self, provider_api, paid_invoice):
        response = provider_api.get(f"{BASE_URL}/earnings/")

        assert response.status_code == 200
        assert response.data["totals"]["lifetime_earnings"] == 90000
        assert response.data["totals"]["paid_invoices_count"] == 1


# =============================================================================
# Admin Payout Console
# =============================================================================


@pytest.mark.django_db
class TestAdminPayoutViews:
    def test_list_requires_admin(self, client_api):
        response = client_api.get(f"{BASE_URL}/admin/payouts/")

        assert response.status_code == 403
        assert response.data == {
            "success": False,
            "error": "Forbidden: Admin access required",
            "error_code": "ADMIN_REQUIRED",
        }

    def test_list(self, admin_api):
        PayoutFactory()

        response = admin_api.get(f"{BASE_URL}/admin/payouts/")

        assert response.status_code == 200
        assert len(response.data["payouts"]) == 1
        assert response.data["summary"]["pending_count"] == 1

    def test_create(self, admin_api, paid_invoice):
        response = admin_api.post(
            f"{BASE_URL}/admin/payouts/",
            {"invoice_id": str(paid_invoice.id), "amount": 90000, "notes": "Manual"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["payout"]["amount"] == 90000

    def test_create_missing_fields(self, admin_api):
        response = admin_api.post(f"{BASE_URL}/admin/payouts/", {}, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "MISSING_FIELDS"

    def test_mark_paid(self, admin_api):
        payout = PayoutFactory()

        response = admin_api.post(f"{BASE_URL}/admin/payouts/{payout.id}/mark-paid/")

        assert response.status_code == 200
        assert response.data["payout"]["status"] == "paid"

    def test_release_without_account(self, admin_api, escrow_stripe):
        payout = PayoutFactory()

        response = admin_api.post(f"{BASE_URL}/admin/payouts/{payout.id}/release/")

        assert response.status_code == 409
        assert response.data["error_code"] == "PAYOUT_ACCOUNT_MISSING"

    def test_release_unknown_payout(self, admin_api, escrow_stripe):
        response = admin_api.post(f"{BASE_URL}/admin/payouts/{uuid.uuid4()}/release/")

        assert response.status_code == 404

    def test_paid_invoices(self, admin_api, paid_invoice):
        InvoiceFactory(job=JobFactory(status=JobStatus.IN_PROGRESS))

        response = admin_api.get(f"{BASE_URL}/admin/invoices/paid/")

        assert response.status_code == 200
        assert [row["id"] for row in response.data["invoices"]] == [str(paid_invoice.id)]

    def test_paid_invoices_without_payout(self, admin_api, paid_invoice):
        PayoutFactory(invoice=paid_invoice)

        response = admin_api.get(f"{BASE_URL}/admin/invoices/paid/?without_payout=true")

        assert response.data["invoices"] == []
