"""
Payout model for tracking transfers to providers.

A Payout represents the provider's share of a paid invoice
(subtotal_provider) leaving the platform to the provider's Stripe
Connected Account. There is at most one Payout per invoice.

Usage:
    from payments.models import Payout
    from payments.state_machines import PayoutStatus

    payout, created = Payout.objects.get_or_create(
        invoice=invoice,
        defaults={"provider_id": invoice.provider_id, "amount": invoice.subtotal_provider},
    )

Status changes go through payments.locks.transition so concurrent
releasers cannot both move the same payout.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F

from core.models import BaseModel, UUIDPrimaryKeyMixin
from payments.state_machines import PayoutStatus


class Payout(UUIDPrimaryKeyMixin, BaseModel):
    """
    Money transfer to a provider for one invoice.

    Fields:
        invoice: Source invoice (one payout per invoice)
        provider: Provider receiving the money
        amount: Payout amount in centavos
        status: pending, paid or failed
        stripe_transfer_id: Stripe Transfer ID (tr_xxx); set once transferred
        version: Optimistic locking version
        paid_at: When payout completed
        notes: Admin notes (manual payouts)
        failure_reason: Last transfer error
    """

    invoice = models.OneToOneField(
        "payments.Invoice",
        on_delete=models.PROTECT,
        related_name="payout",
        help_text="Invoice this payout settles",
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Provider receiving the payout",
    )

    amount = models.PositiveBigIntegerField(
        help_text="Payout amount in centavos",
    )
    currency = models.CharField(max_length=3, default="mxn")

    status = models.CharField(
        max_length=20,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
        db_index=True,
    )

    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["provider", "status"], name="payments_pa_provide_3c1f0e_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(amount__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.status}, {self.amount / 100:.2f} MXN)"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = self.pk and not self._state.adding
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def is_transferred(self) -> bool:
        return bool(self.stripe_transfer_id)
