"""
Notifications app: the in-app notification inbox.

This app provides:
- Notification model, the sink every payment and job event writes to
- NotificationService for creation, admin fan-out and read status
- REST API for listing and marking notifications read

Usage:
    from notifications.services import NotificationService

    result = NotificationService.create_notification(
        recipient_id=job.client_id,
        type="invoice_created",
        title="Nueva factura",
        message="Tu proveedor envió la factura del trabajo.",
        link="/active-jobs",
    )

    if result.success:
        notification = result.data
"""
