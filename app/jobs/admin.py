"""
Job admin configuration.

Payment and completion fields are read-only; they are written by the
payment services, the webhooks and the sweeps.
"""

from django.contrib import admin

from jobs.models import Job, JobMessage, RescheduleRequest


class RescheduleRequestInline(admin.TabularInline):
    model = RescheduleRequest
    fk_name = "job"
    extra = 0
    readonly_fields = ["requested_by", "original_date", "requested_date", "status", "responded_at"]
    can_delete = False


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "title",
        "client",
        "provider",
        "status",
        "visit_fee_paid",
        "visit_dispute_status",
        "completion_status",
        "created_at",
    ]
    list_filter = ["status", "visit_fee_paid", "visit_dispute_status", "completion_status"]
    search_fields = ["id", "title", "client__email", "provider__email", "stripe_visit_payment_intent_id"]
    readonly_fields = [
        "id",
        "stripe_visit_payment_intent_id",
        "visit_fee_paid",
        "provider_confirmed_visit",
        "client_confirmed_visit",
        "visit_confirmation_deadline",
        "completion_status",
        "completion_marked_at",
        "completion_confirmed_at",
        "created_at",
        "updated_at",
    ]
    inlines = [RescheduleRequestInline]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "title", "category", "description", "status"),
            },
        ),
        (
            "Parties",
            {
                "fields": ("client", "provider", "scheduled_at"),
            },
        ),
        (
            "Visit Fee",
            {
                "fields": (
                    "stripe_visit_payment_intent_id",
                    "visit_fee_paid",
                    "provider_visited",
                    "provider_confirmed_visit",
                    "client_confirmed_visit",
                    "visit_confirmation_deadline",
                    "visit_dispute_status",
                    "visit_dispute_reason",
                ),
            },
        ),
        (
            "Completion",
            {
                "fields": ("completion_status", "completion_marked_at", "completion_confirmed_at"),
            },
        ),
        (
            "Reschedule",
            {
                "fields": (
                    "reschedule_requested_at",
                    "reschedule_requested_date",
                    "reschedule_response_deadline",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Jobs move to completed or cancelled; they are never deleted."""
        return False


@admin.register(JobMessage)
class JobMessageAdmin(admin.ModelAdmin):
    list_display = ["id", "job", "sender", "is_system_message", "system_event_type", "created_at"]
    list_filter = ["is_system_message", "system_event_type"]
    search_fields = ["job__id", "body"]
    ordering = ["-created_at"]
