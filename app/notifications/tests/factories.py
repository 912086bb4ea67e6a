"""
Factory Boy factories for notification models.

Usage:
    from notifications.tests.factories import NotificationFactory

    notification = NotificationFactory(recipient=user)
    notification = NotificationFactory(recipient=user, is_read=True)
"""

import factory

from authentication.tests.factories import UserFactory
from notifications.models import Notification, NotificationKind


class NotificationFactory(factory.django.DjangoModelFactory):
    """Unread notification for a new user."""

    class Meta:
        model = Notification

    recipient = factory.SubFactory(UserFactory)
    type = NotificationKind.INVOICE_CREATED
    title = factory.Sequence(lambda n: f"Nueva factura #{n}")
    message = "Tu proveedor envió la factura del trabajo."
    link = "/active-jobs"
    data = factory.LazyFunction(dict)
    is_read = False
