"""
Django admin configuration for notifications.
"""

from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["id", "recipient", "type", "title", "is_read", "created_at"]
    list_filter = ["type", "is_read"]
    search_fields = ["recipient__email", "title", "link"]
    raw_id_fields = ["recipient"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-created_at"]
