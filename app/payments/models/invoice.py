"""
Invoice models.

An Invoice is the provider's bill for the work on a job, created after the
visit. The client pays total_customer_amount; the provider is later paid
subtotal_provider through a Payout (escrow release).

Amounts (centavos):
    subtotal                  - Sum of InvoiceItem totals
    subtotal_provider         - subtotal minus the provider fee (paid out)
    chamby_commission_amount  - provider fee + customer fee
    total_customer_amount     - subtotal plus the customer fee (charged)

The check constraint invoice_totals_balance guarantees
total_customer_amount == subtotal_provider + chamby_commission_amount.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel, UUIDPrimaryKeyMixin
from payments.state_machines import InvoiceStatus


class Invoice(UUIDPrimaryKeyMixin, BaseModel):
    """
    A provider's invoice for a job. At most one per job.

    Fields:
        job: The invoiced job (unique)
        provider / client: Parties, denormalized from the job
        status: See InvoiceStatus
        stripe_payment_intent_id: Automatic-capture PaymentIntent for the invoice
        paid_at / released_at: Timestamps of payment and escrow release
    """

    job = models.OneToOneField(
        "jobs.Job",
        on_delete=models.PROTECT,
        related_name="invoice",
        help_text="Job this invoice bills (one invoice per job)",
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="provider_invoices",
    )
    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="client_invoices",
    )

    status = models.CharField(
        max_length=20,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.PENDING,
        db_index=True,
    )

    subtotal = models.PositiveBigIntegerField(help_text="Centavos")
    subtotal_provider = models.PositiveBigIntegerField(help_text="Centavos")
    chamby_commission_amount = models.PositiveBigIntegerField(help_text="Centavos")
    total_customer_amount = models.PositiveBigIntegerField(help_text="Centavos")

    currency = models.CharField(max_length=3, default="mxn")

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe PaymentIntent for the invoice (pi_xxx)",
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        constraints = [
            models.CheckConstraint(
                check=models.Q(
                    total_customer_amount=models.F("subtotal_provider")
                    + models.F("chamby_commission_amount")
                ),
                name="invoice_totals_balance",
            ),
            models.CheckConstraint(
                check=models.Q(subtotal__gt=0),
                name="invoice_subtotal_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Invoice({self.id}, {self.status}, {self.total_customer_amount / 100:.2f} MXN)"


class InvoiceItem(BaseModel):
    """A line on an invoice. total = unit_price * quantity (centavos)."""

    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="items",
    )
    description = models.CharField(max_length=500)
    unit_price = models.PositiveBigIntegerField(help_text="Centavos")
    quantity = models.PositiveIntegerField(default=1)
    total = models.PositiveBigIntegerField(help_text="Centavos")

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.description} x{self.quantity}"
