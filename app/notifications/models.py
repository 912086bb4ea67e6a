"""
Notification models.

A Notification row is the sink for every user-facing event of the payment
lifecycle (visit confirmation requests, disputes, invoices, payouts,
reschedule transfers). Push, WhatsApp and email delivery read from this
table outside this service.

Related files:
    - services.py: NotificationService (creation, admin fan-out, dedupe)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class NotificationKind(models.TextChoices):
    """Known notification type keys. Stored as plain strings."""

    VISIT_CONFIRMATION_REQUIRED = "visit_confirmation_required", "Visit confirmation required"
    VISIT_CONFIRMED_BY_CLIENT = "visit_confirmed_by_client", "Visit confirmed by client"
    VISIT_DISPUTE_OPENED = "visit_dispute_opened", "Visit dispute opened"
    VISIT_DISPUTED = "visit_disputed", "Visit disputed"
    DISPUTE_RESOLVED = "dispute_resolved", "Dispute resolved"
    VISIT_CONFIRMATION_EXPIRED = "visit_confirmation_expired", "Visit confirmation expired"
    VISIT_CONFIRMATION_ESCALATED = "visit_confirmation_escalated", "Visit confirmation escalated"
    INVOICE_CREATED = "invoice_created", "Invoice created"
    INVOICE_PAID = "invoice_paid", "Invoice paid"
    INVOICE_PAYMENT_FAILED = "invoice_payment_failed", "Invoice payment failed"
    PAYOUT_RELEASED = "payout_released", "Payout released"
    JOB_COMPLETION_PENDING = "job_completion_pending", "Job completion pending"
    JOB_TRANSFERRED = "job_transferred", "Job transferred"
    PROVIDER_CHANGED = "provider_changed", "Provider changed"
    TRANSFER_WARNING = "transfer_warning", "Transfer warning"


class Notification(BaseModel):
    """
    Individual notification record for a user.

    Notifications are immutable once created except for is_read.

    Fields:
        recipient: User receiving the notification
        type: Notification type key (see NotificationKind)
        title: Rendered title (Spanish)
        message: Rendered body (Spanish)
        link: Frontend path the notification opens
        data: Arbitrary JSON context (job_id, invoice_id, ...)
        is_read: Whether recipient has read this notification
        idempotency_key: Optional key preventing duplicate creation

    Usage:
        Notification.objects.filter(recipient=user, is_read=False)
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving this notification",
    )
    type = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Notification type key",
    )
    title = models.CharField(
        max_length=255,
        help_text="Rendered notification title",
    )
    message = models.TextField(
        blank=True,
        default="",
        help_text="Rendered notification body",
    )
    link = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Frontend path opened by the notification",
    )
    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary context data",
    )
    is_read = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether recipient has read this notification",
    )
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    class Meta:
        db_table = "notifications_notification"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
            # Reschedule warning dedupe lookup
            models.Index(
                fields=["recipient", "type", "link"],
                name="notif_recipient_type_link_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                name="notif_idempotency_key_unique",
                condition=models.Q(idempotency_key__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        read_status = "read" if self.is_read else "unread"
        return f"Notification({self.type}) -> User {self.recipient_id} [{read_status}]"
