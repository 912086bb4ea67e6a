"""
Job models.

This module defines the service engagement and its satellite records:
- Job: A client's booked service, its visit-fee and completion state
- RescheduleRequest: A client's request to move a job to a new date
- JobMessage: Chat message on a job (system messages are posted by the
  completion flow and the auto-complete sweep)

State Overview:

Job.status:
    pending/searching → assigned → accepted → confirmed → en_route → on_site
    → in_progress → completed
    any non-terminal → cancelled
    reschedule expiry: any → pending (provider cleared)

Job.completion_status:
    null → provider_marked_done → completed (client confirmed)
    null → provider_marked_done → auto_completed (24h sweep)

Job.visit_dispute_status:
    null → pending_support (client dispute or 48h timeout)
    pending_support → resolved_provider (admin captured)
    pending_support → resolved_client (admin released)

Jobs are never deleted; they move to completed or cancelled instead.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel, UUIDPrimaryKeyMixin


class JobStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SEARCHING = "searching", "Searching"
    ASSIGNED = "assigned", "Assigned"
    ACCEPTED = "accepted", "Accepted"
    CONFIRMED = "confirmed", "Confirmed"
    EN_ROUTE = "en_route", "En Route"
    ON_SITE = "on_site", "On Site"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


CLOSED_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.CANCELLED)
OPEN_JOB_STATUSES = tuple(
    status for status in JobStatus.values if status not in CLOSED_JOB_STATUSES
)


class CompletionStatus(models.TextChoices):
    PROVIDER_MARKED_DONE = "provider_marked_done", "Provider Marked Done"
    COMPLETED = "completed", "Completed"
    AUTO_COMPLETED = "auto_completed", "Auto Completed"


class VisitDisputeStatus(models.TextChoices):
    PENDING_SUPPORT = "pending_support", "Pending Support"
    RESOLVED_PROVIDER = "resolved_provider", "Resolved For Provider"
    RESOLVED_CLIENT = "resolved_client", "Resolved For Client"


class RescheduleStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    REJECTED = "rejected", "Rejected"
    EXPIRED = "expired", "Expired"


class Job(UUIDPrimaryKeyMixin, BaseModel):
    """
    A requested service engagement between a client and a provider.

    The job stores only a reference to the visit-fee authorization held by
    Stripe plus locally derived flags; Stripe owns the authorization's
    lifecycle.

    Fields:
        client: User who booked the job
        provider: Assigned provider (null until assigned or after expiry)
        stripe_visit_payment_intent_id: Manual-capture PaymentIntent id
        visit_fee_paid: True only after Stripe confirmed the capture
        provider_confirmed_visit / client_confirmed_visit: Visit confirmations
        visit_confirmation_deadline: Client's deadline after provider confirmed
        visit_dispute_status / visit_dispute_reason: Support escalation
        completion_status / completion_marked_at / completion_confirmed_at:
            Work completion handshake
        reschedule_*: Pending reschedule request mirrored on the job

    Note:
        State transitions are written as conditional updates
        (Job.objects.filter(pk=..., <expected state>).update(...)) and the
        affected row count is checked; see payments.locks.compare_and_set.
    """

    title = models.CharField(
        max_length=255,
        help_text="Short description shown to both parties",
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        help_text="Service category (plomería, electricidad, ...)",
    )
    description = models.TextField(
        blank=True,
        help_text="Client's description of the work",
    )
    status = models.CharField(
        max_length=20,
        choices=JobStatus.choices,
        default=JobStatus.SEARCHING,
        db_index=True,
        help_text="Current job status",
    )

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="client_jobs",
        help_text="Client who booked the job",
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="provider_jobs",
        help_text="Assigned provider",
    )
    scheduled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the visit is scheduled",
    )

    # Visit fee authorization
    stripe_visit_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe PaymentIntent holding the visit fee (pi_xxx)",
    )
    visit_fee_paid = models.BooleanField(
        default=False,
        help_text="Set only after Stripe confirmed the visit fee capture",
    )
    provider_visited = models.BooleanField(
        default=False,
        help_text="Whether the visit is considered performed",
    )
    provider_confirmed_visit = models.BooleanField(
        default=False,
        help_text="Provider confirmed the visit took place",
    )
    client_confirmed_visit = models.BooleanField(
        default=False,
        help_text="Client confirmed the visit took place",
    )
    visit_confirmation_deadline = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Deadline for the client to confirm or dispute the visit",
    )
    visit_dispute_status = models.CharField(
        max_length=20,
        choices=VisitDisputeStatus.choices,
        null=True,
        blank=True,
        db_index=True,
        help_text="Support escalation state of the visit",
    )
    visit_dispute_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given when the visit was disputed or escalated",
    )

    # Work completion
    completion_status = models.CharField(
        max_length=25,
        choices=CompletionStatus.choices,
        null=True,
        blank=True,
        db_index=True,
        help_text="Completion handshake state",
    )
    completion_marked_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider marked the work done",
    )
    completion_confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the completion was confirmed (client or sweep)",
    )

    # Pending reschedule
    reschedule_requested_at = models.DateTimeField(null=True, blank=True)
    reschedule_requested_date = models.DateTimeField(null=True, blank=True)
    reschedule_response_deadline = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Deadline for the provider to answer a reschedule request",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Job"
        verbose_name_plural = "Jobs"
        indexes = [
            models.Index(
                fields=["completion_status", "completion_marked_at"],
                name="job_completion_sweep_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Job({self.id}, {self.status})"

    def is_client(self, user_id) -> bool:
        return user_id is not None and str(self.client_id) == str(user_id)

    def is_provider(self, user_id) -> bool:
        return (
            user_id is not None
            and self.provider_id is not None
            and str(self.provider_id) == str(user_id)
        )


class RescheduleRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    A client's request to move a job to a new date.

    The provider must answer before job.reschedule_response_deadline; the
    reschedule sweep expires unanswered requests and returns the job to the
    unassigned pool at the requested date.
    """

    job = models.ForeignKey(
        Job,
        on_delete=models.CASCADE,
        related_name="reschedule_requests",
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reschedule_requests",
    )
    original_date = models.DateTimeField()
    requested_date = models.DateTimeField()
    reason = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=20,
        choices=RescheduleStatus.choices,
        default=RescheduleStatus.PENDING,
        db_index=True,
    )
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"RescheduleRequest({self.id}, {self.status})"


class JobMessage(BaseModel):
    """
    Message in a job's conversation.

    System messages have no sender and carry a system_event_type
    (e.g. "auto_completed") so the chat UI can style them.
    """

    job = models.ForeignKey(
        Job,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="job_messages",
    )
    body = models.TextField()
    is_system_message = models.BooleanField(default=False)
    system_event_type = models.CharField(max_length=50, blank=True, default="")

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"JobMessage({self.pk}, job={self.job_id})"

    @classmethod
    def post_system_message(cls, job_id, body: str, event_type: str = "") -> JobMessage:
        return cls.objects.create(
            job_id=job_id,
            body=body,
            is_system_message=True,
            system_event_type=event_type,
        )
