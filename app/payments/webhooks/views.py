"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import GatewayInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Stripe expects a 2xx response within 20 seconds, so handlers run in the
    process_webhook_event Celery task.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - Already processed events return 200 without reprocessing
    - Pending or failed events are queued again

    If queuing raises, the error propagates as a 500 and Stripe redelivers
    the event; the stored WebhookEvent is picked up by the redelivery.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Missing/invalid signature or payload
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except GatewayInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
        },
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created:
        if webhook_event.status in (
            WebhookEventStatus.PROCESSED,
            WebhookEventStatus.PROCESSING,
        ):
            logger.info(
                "Webhook already handled, returning success",
                extra={
                    "stripe_event_id": stripe_event_id,
                    "status": webhook_event.status,
                },
            )
            return HttpResponse("Already processed", status=200)

        logger.info(
            f"Webhook already exists with status: {webhook_event.status}",
            extra={"stripe_event_id": stripe_event_id},
        )

    from payments.tasks import process_webhook_event

    process_webhook_event.delay(str(webhook_event.id))
    logger.info(
        "Webhook queued for processing",
        extra={
            "stripe_event_id": stripe_event_id,
            "webhook_event_id": str(webhook_event.id),
        },
    )

    return HttpResponse("Accepted", status=200)
