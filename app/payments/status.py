"""
Job payment status resolver.

Derives the visit fee and invoice status of a job from stored fields only;
no gateway calls. Labels are the Spanish strings shown to each party.

Usage:
    from payments.status import get_job_payment_status, get_visit_fee_label

    status = get_job_payment_status(job, invoice)
    label = get_visit_fee_label(status.visit_fee, role="provider")
"""

from __future__ import annotations

from dataclasses import dataclass

# Visit fee statuses
NOT_AUTHORIZED = "not_authorized"
AUTHORIZED = "authorized"
CAPTURED = "captured"

# Invoice statuses
NONE = "none"
DRAFT = "draft"
PENDING = "pending"
PAID = "paid"
FAILED = "failed"
UNKNOWN = "unknown"

ROLE_CUSTOMER = "customer"
ROLE_PROVIDER = "provider"

_INVOICE_STATUS_MAP = {
    "draft": DRAFT,
    "sent": PENDING,
    "pending": PENDING,
    "paid": PAID,
    "failed": FAILED,
}

_VISIT_FEE_LABELS = {
    ROLE_CUSTOMER: {
        CAPTURED: "Visita pagada",
        AUTHORIZED: "Visita autorizada",
        NOT_AUTHORIZED: "Pago pendiente",
    },
    ROLE_PROVIDER: {
        CAPTURED: "Pago confirmado",
        AUTHORIZED: "Pago asegurado",
        NOT_AUTHORIZED: "Pago no asegurado",
    },
}

_INVOICE_LABELS = {
    ROLE_CUSTOMER: {
        DRAFT: "Cotización en preparación",
        PENDING: "Factura pendiente",
        PAID: "Factura pagada",
        FAILED: "Pago fallido",
    },
    ROLE_PROVIDER: {
        DRAFT: "Cotización borrador",
        PENDING: "Factura enviada",
        PAID: "Factura pagada",
        FAILED: "Pago fallido",
    },
}


@dataclass(frozen=True)
class JobPaymentStatus:
    visit_fee: str
    invoice: str

    def to_dict(self) -> dict[str, str]:
        return {"visit_fee": self.visit_fee, "invoice": self.invoice}


def get_visit_fee_status(job) -> str:
    """captured if paid, authorized if a PaymentIntent is stored, else not_authorized."""
    if job.visit_fee_paid:
        return CAPTURED
    if job.stripe_visit_payment_intent_id:
        return AUTHORIZED
    return NOT_AUTHORIZED


def get_invoice_status(invoice) -> str:
    if invoice is None or not invoice.status:
        return NONE
    return _INVOICE_STATUS_MAP.get(str(invoice.status).lower(), UNKNOWN)


def get_job_payment_status(job, invoice=None) -> JobPaymentStatus:
    return JobPaymentStatus(
        visit_fee=get_visit_fee_status(job),
        invoice=get_invoice_status(invoice),
    )


def get_visit_fee_label(status: str, role: str) -> str:
    labels = _VISIT_FEE_LABELS.get(role, _VISIT_FEE_LABELS[ROLE_PROVIDER])
    return labels.get(status, "Estado desconocido")


def get_invoice_label(status: str, role: str) -> str:
    labels = _INVOICE_LABELS.get(role, _INVOICE_LABELS[ROLE_PROVIDER])
    return labels.get(status, "")
