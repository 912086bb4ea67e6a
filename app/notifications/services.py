"""
Notification service layer.

Services:
    NotificationService: Notification creation, admin fan-out, dedupe lookups
        and read status management

Design Principles:
    - Services are stateless (use class methods)
    - Creation never raises for a duplicate idempotency key; it returns a
      failure result with error_code DUPLICATE so sweeps can re-run safely

Usage:
    from notifications.services import NotificationService

    NotificationService.create_notification(
        recipient_id=job.client_id,
        type="visit_confirmation_required",
        title="Confirma la visita del proveedor",
        message="El proveedor confirmó la visita. Tienes 48 horas para confirmar.",
        link=f"/jobs/{job.id}",
        data={"job_id": str(job.id)},
    )

    NotificationService.notify_admins(
        type="visit_dispute_opened",
        title="Nueva disputa de visita",
        message=f"El cliente disputó la visita del trabajo {job.title}",
        link="/admin/disputes",
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult
from notifications.models import Notification

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any


class NotificationService(BaseService):
    """
    Service for notification creation and read status.

    Methods:
        create_notification: Create a notification for one user
        notify_admins: Create the same notification for every admin
        exists_since: Dedupe lookup used by the reschedule warning sweep
        mark_as_read: Mark a single notification as read
        mark_all_as_read: Mark all user's unread notifications as read
    """

    @classmethod
    def create_notification(
        cls,
        recipient_id: Any,
        type: str,
        title: str,
        message: str = "",
        link: str = "",
        data: dict | None = None,
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Create a new notification for a user.

        Args:
            recipient_id: User primary key receiving the notification
            type: Notification type key
            title: Rendered title
            message: Rendered body
            link: Frontend path the notification opens
            data: Context data stored alongside the notification
            idempotency_key: Optional key to prevent duplicate notifications

        Returns:
            ServiceResult with the created Notification

        Error codes:
            DUPLICATE: Notification with this idempotency_key already exists
        """
        if idempotency_key:
            with transaction.atomic():
                existing = (
                    Notification.objects.select_for_update()
                    .filter(idempotency_key=idempotency_key)
                    .first()
                )
                if existing:
                    cls.get_logger().info(
                        "Duplicate notification prevented",
                        extra={"idempotency_key": idempotency_key},
                    )
                    return ServiceResult.failure(
                        "Notification with idempotency_key already exists",
                        error_code="DUPLICATE",
                    )

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient_id=recipient_id,
                    type=type,
                    title=title,
                    message=message,
                    link=link,
                    data=data or {},
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Lost the race on the unique idempotency_key constraint
            cls.get_logger().info(
                "Duplicate notification prevented on insert",
                extra={"idempotency_key": idempotency_key},
            )
            return ServiceResult.failure(
                "Notification with idempotency_key already exists",
                error_code="DUPLICATE",
            )

        cls.get_logger().info(
            "Notification created",
            extra={
                "notification_id": str(notification.id),
                "recipient_id": recipient_id,
                "type": type,
            },
        )
        return ServiceResult.success(notification)

    @classmethod
    def notify_admins(
        cls,
        type: str,
        title: str,
        message: str = "",
        link: str = "",
        data: dict | None = None,
    ) -> ServiceResult[int]:
        """
        Create one notification per user holding the admin role.

        Returns:
            ServiceResult with the number of notifications created
        """
        from authentication.models import UserRole

        admin_ids = list(
            UserRole.objects.filter(role=UserRole.Role.ADMIN)
            .values_list("user_id", flat=True)
            .distinct()
        )
        if not admin_ids:
            cls.get_logger().warning(
                "No admins to notify",
                extra={"type": type},
            )
            return ServiceResult.success(0)

        Notification.objects.bulk_create(
            [
                Notification(
                    recipient_id=admin_id,
                    type=type,
                    title=title,
                    message=message,
                    link=link,
                    data=data or {},
                )
                for admin_id in admin_ids
            ]
        )

        cls.get_logger().info(
            "Admins notified",
            extra={"type": type, "admin_count": len(admin_ids)},
        )
        return ServiceResult.success(len(admin_ids))

    @classmethod
    def exists_since(
        cls,
        recipient_id: Any,
        type: str,
        link: str,
        since: datetime,
    ) -> bool:
        """True if the recipient got this type/link notification after `since`."""
        return Notification.objects.filter(
            recipient_id=recipient_id,
            type=type,
            link=link,
            created_at__gte=since,
        ).exists()

    @classmethod
    def mark_as_read(cls, notification: Notification, user_id: Any) -> ServiceResult[Notification]:
        """
        Mark a single notification as read (idempotent).

        Error codes:
            NOT_OWNER: User doesn't own the notification
        """
        if str(notification.recipient_id) != str(user_id):
            cls.get_logger().warning(
                "Attempt to mark foreign notification as read",
                extra={
                    "notification_id": str(notification.id),
                    "user_id": user_id,
                },
            )
            return ServiceResult.failure(
                "No puedes modificar esta notificación",
                error_code="NOT_OWNER",
            )

        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])

        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user_id: Any) -> ServiceResult[int]:
        count = Notification.objects.filter(
            recipient_id=user_id,
            is_read=False,
        ).update(is_read=True)

        cls.get_logger().info(
            "Notifications marked as read",
            extra={"user_id": user_id, "count": count},
        )
        return ServiceResult.success(count)
