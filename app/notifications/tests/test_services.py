"""
Tests for NotificationService.

Covers creation with and without idempotency keys, admin fan-out, the
dedupe lookup used by the reschedule sweep and read status changes.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from authentication.tests.factories import AdminUserFactory
from notifications.models import Notification, NotificationKind
from notifications.services import NotificationService
from notifications.tests.factories import NotificationFactory


@pytest.mark.django_db
class TestCreateNotification:
    def test_creates_notification(self, client_user):
        result = NotificationService.create_notification(
            recipient_id=client_user.pk,
            type=NotificationKind.INVOICE_PAID,
            title="Factura pagada",
            message="Recibimos tu pago.",
            link="/active-jobs",
            data={"invoice_id": "inv-1"},
        )

        assert result.success is True
        notification = result.data
        assert notification.recipient_id == client_user.pk
        assert notification.type == "invoice_paid"
        assert notification.data == {"invoice_id": "inv-1"}
        assert notification.is_read is False

    def test_data_defaults_to_empty_dict(self, client_user):
        result = NotificationService.create_notification(
            recipient_id=client_user.pk,
            type=NotificationKind.INVOICE_PAID,
            title="Factura pagada",
        )

        assert result.data.data == {}

    def test_duplicate_idempotency_key(self, client_user):
        kwargs = {
            "recipient_id": client_user.pk,
            "type": NotificationKind.VISIT_CONFIRMATION_EXPIRED,
            "title": "Visita confirmada automáticamente",
            "idempotency_key": "visit_expired:job-1",
        }

        first = NotificationService.create_notification(**kwargs)
        second = NotificationService.create_notification(**kwargs)

        assert first.success is True
        assert second.success is False
        assert second.error_code == "DUPLICATE"
        assert Notification.objects.filter(idempotency_key="visit_expired:job-1").count() == 1

    def test_without_key_allows_repeats(self, client_user):
        for _ in range(2):
            NotificationService.create_notification(
                recipient_id=client_user.pk,
                type=NotificationKind.INVOICE_CREATED,
                title="Nueva factura",
            )

        assert Notification.objects.filter(recipient=client_user).count() == 2


@pytest.mark.django_db
class TestNotifyAdmins:
    def test_one_notification_per_admin(self, client_user):
        admins = AdminUserFactory.create_batch(2)

        result = NotificationService.notify_admins(
            type=NotificationKind.VISIT_DISPUTE_OPENED,
            title="Nueva disputa de visita",
            link="/admin/disputes",
            data={"job_id": "job-1"},
        )

        assert result.data == 2
        assert set(
            Notification.objects.filter(type="visit_dispute_opened").values_list(
                "recipient_id", flat=True
            )
        ) == {admin.pk for admin in admins}
        assert not Notification.objects.filter(recipient=client_user).exists()

    def test_no_admins(self):
        result = NotificationService.notify_admins(
            type=NotificationKind.VISIT_DISPUTE_OPENED,
            title="Nueva disputa de visita",
        )

        assert result.success is True
        assert result.data == 0
        assert Notification.objects.count() == 0


@pytest.mark.django_db
class TestExistsSince:
    def test_recent_notification_found(self, provider_user):
        NotificationFactory(
            recipient=provider_user,
            type=NotificationKind.TRANSFER_WARNING,
            link="/provider-portal/reschedule/abc",
        )

        assert NotificationService.exists_since(
            provider_user.pk,
            NotificationKind.TRANSFER_WARNING,
            "/provider-portal/reschedule/abc",
            timezone.now() - timedelta(hours=1),
        )

    def test_older_notification_ignored(self, provider_user):
        with freeze_time(timezone.now() - timedelta(hours=3)):
            NotificationFactory(
                recipient=provider_user,
                type=NotificationKind.TRANSFER_WARNING,
                link="/provider-portal/reschedule/abc",
            )

        assert not NotificationService.exists_since(
            provider_user.pk,
            NotificationKind.TRANSFER_WARNING,
            "/provider-portal/reschedule/abc",
            timezone.now() - timedelta(hours=2),
        )

    def test_other_link_ignored(self, provider_user):
        NotificationFactory(
            recipient=provider_user,
            type=NotificationKind.TRANSFER_WARNING,
            link="/provider-portal/reschedule/other",
        )

        assert not NotificationService.exists_since(
            provider_user.pk,
            NotificationKind.TRANSFER_WARNING,
            "/provider-portal/reschedule/abc",
            timezone.now() - timedelta(hours=1),
        )


@pytest.mark.django_db
class TestReadStatus:
    def test_mark_as_read(self, client_user):
        notification = NotificationFactory(recipient=client_user)

        result = NotificationService.mark_as_read(notification, client_user.pk)

        assert result.success is True
        notification.refresh_from_db()
        assert notification.is_read is True

    def test_mark_as_read_is_idempotent(self, client_user):
        notification = NotificationFactory(recipient=client_user, is_read=True)

        result = NotificationService.mark_as_read(notification, client_user.pk)

        assert result.success is True
        assert result.data.is_read is True

    def test_mark_foreign_notification(self, client_user, provider_user):
        notification = NotificationFactory(recipient=provider_user)

        result = NotificationService.mark_as_read(notification, client_user.pk)

        assert result.success is False
        assert result.error_code == "NOT_OWNER"
        notification.refresh_from_db()
        assert notification.is_read is False

    def test_mark_all_as_read(self, client_user, provider_user):
        NotificationFactory.create_batch(3, recipient=client_user)
        NotificationFactory(recipient=client_user, is_read=True)
        NotificationFactory(recipient=provider_user)

        result = NotificationService.mark_all_as_read(client_user.pk)

        assert result.data == 3
        assert not Notification.objects.filter(recipient=client_user, is_read=False).exists()
        assert Notification.objects.filter(recipient=provider_user, is_read=False).count() == 1
