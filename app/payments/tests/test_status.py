"""
Tests for the job payment status resolver.

The resolver only reads stored fields, so plain objects stand in for
Job and Invoice rows.
"""

from types import SimpleNamespace

import pytest

from payments import status as payment_status
from payments.status import (
    get_invoice_label,
    get_invoice_status,
    get_job_payment_status,
    get_visit_fee_label,
    get_visit_fee_status,
)


def make_job(visit_fee_paid=False, reference=""):
    return SimpleNamespace(
        visit_fee_paid=visit_fee_paid,
        stripe_visit_payment_intent_id=reference,
    )


class TestVisitFeeStatus:
    def test_captured_when_paid(self):
        """visit_fee_paid wins even if the reference is gone."""
        assert get_visit_fee_status(make_job(visit_fee_paid=True)) == payment_status.CAPTURED

    def test_authorized_with_reference(self):
        job = make_job(reference="pi_123")

        assert get_visit_fee_status(job) == payment_status.AUTHORIZED

    def test_not_authorized_without_reference(self):
        assert get_visit_fee_status(make_job()) == payment_status.NOT_AUTHORIZED


class TestInvoiceStatus:
    @pytest.mark.parametrize(
        "stored,expected",
        [
            ("draft", payment_status.DRAFT),
            ("sent", payment_status.PENDING),
            ("pending", payment_status.PENDING),
            ("PAID", payment_status.PAID),
            ("failed", payment_status.FAILED),
            ("released", payment_status.UNKNOWN),
        ],
    )
    def test_mapping(self, stored, expected):
        assert get_invoice_status(SimpleNamespace(status=stored)) == expected

    def test_no_invoice(self):
        assert get_invoice_status(None) == payment_status.NONE

    def test_invoice_without_status(self):
        assert get_invoice_status(SimpleNamespace(status="")) == payment_status.NONE

    def test_job_payment_status_combines_both(self):
        result = get_job_payment_status(
            make_job(reference="pi_123"),
            SimpleNamespace(status="paid"),
        )

        assert result.to_dict() == {"visit_fee": "authorized", "invoice": "paid"}


class TestLabels:
    def test_customer_visit_labels(self):
        assert get_visit_fee_label("captured", "customer") == "Visita pagada"
        assert get_visit_fee_label("authorized", "customer") == "Visita autorizada"
        assert get_visit_fee_label("not_authorized", "customer") == "Pago pendiente"

    def test_provider_visit_labels(self):
        assert get_visit_fee_label("captured", "provider") == "Pago confirmado"
        assert get_visit_fee_label("authorized", "provider") == "Pago asegurado"
        assert get_visit_fee_label("not_authorized", "provider") == "Pago no asegurado"

    def test_unknown_visit_status(self):
        assert get_visit_fee_label("weird", "customer") == "Estado desconocido"

    def test_invoice_labels_by_role(self):
        assert get_invoice_label("pending", "customer") == "Factura pendiente"
        assert get_invoice_label("pending", "provider") == "Factura enviada"
        assert get_invoice_label("draft", "customer") == "Cotización en preparación"

    def test_invoice_label_empty_for_none(self):
        assert get_invoice_label("none", "customer") == ""
