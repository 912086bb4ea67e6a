"""
Payment admin configuration.

Registers the payment domain models with the Django admin. Status changes
go through the services (payout console, webhooks, sweeps), so money
fields and Stripe references are read-only here.
"""

from django.contrib import admin

from payments.models import (
    Invoice,
    InvoiceItem,
    Payout,
    ProviderPayoutAccount,
    WebhookEvent,
)
from payments.pricing import format_mxn

__all__ = [
    "InvoiceAdmin",
    "PayoutAdmin",
    "ProviderPayoutAccountAdmin",
    "WebhookEventAdmin",
]


@admin.register(ProviderPayoutAccount)
class ProviderPayoutAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for ProviderPayoutAccount.

    Provides visibility into Stripe Connect account status.
    """

    list_display = [
        "id",
        "profile",
        "stripe_account_id",
        "onboarding_status",
        "created_at",
    ]
    list_filter = ["onboarding_status"]
    search_fields = ["id", "stripe_account_id", "profile__user__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ["description", "unit_price", "quantity", "total"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    """
    Admin configuration for Invoice.

    Amounts are computed once at creation and never edited.
    """

    list_display = [
        "id",
        "job",
        "provider",
        "client",
        "total_display",
        "status",
        "paid_at",
        "released_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = [
        "id",
        "stripe_payment_intent_id",
        "job__id",
        "provider__email",
        "client__email",
    ]
    readonly_fields = [
        "id",
        "job",
        "provider",
        "client",
        "subtotal",
        "subtotal_provider",
        "chamby_commission_amount",
        "total_customer_amount",
        "currency",
        "stripe_payment_intent_id",
        "paid_at",
        "released_at",
        "created_at",
        "updated_at",
    ]
    inlines = [InvoiceItemInline]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "job", "provider", "client", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": (
                    "subtotal",
                    "subtotal_provider",
                    "chamby_commission_amount",
                    "total_customer_amount",
                    "currency",
                ),
            },
        ),
        (
            "Stripe Details",
            {
                "fields": ("stripe_payment_intent_id",),
            },
        ),
        (
            "Status Timestamps",
            {
                "fields": ("paid_at", "released_at"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def total_display(self, obj: Invoice) -> str:
        return format_mxn(obj.total_customer_amount)

    total_display.short_description = "Total"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for invoices (audit trail)."""
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into payout status and history. Use the payout
    console endpoints to release or mark payouts paid.
    """

    list_display = [
        "id",
        "invoice",
        "provider",
        "amount_display",
        "status",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = [
        "id",
        "stripe_transfer_id",
        "invoice__id",
        "provider__email",
    ]
    readonly_fields = [
        "id",
        "invoice",
        "provider",
        "amount",
        "currency",
        "stripe_transfer_id",
        "created_at",
        "updated_at",
        "version",
        "paid_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "invoice", "provider", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency"),
            },
        ),
        (
            "Stripe Details",
            {
                "fields": ("stripe_transfer_id", "paid_at"),
            },
        ),
        (
            "Notes",
            {
                "fields": ("notes", "failure_reason"),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("version", "created_at", "updated_at"),
                "classes": ("collapse",),
            },
        ),
    )

    def amount_display(self, obj: Payout) -> str:
        """Display the amount formatted as currency."""
        return format_mxn(obj.amount)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "payload",
        "processed_at",
        "retry_count",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
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
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
