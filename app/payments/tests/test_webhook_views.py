"""
Tests for the Stripe webhook endpoint.

Signature verification and task queuing are patched; the view's own
behavior (status codes, WebhookEvent idempotency) runs for real.
"""

import json

import pytest

from payments.exceptions import GatewayInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.tests.factories import WebhookEventFactory, build_event_payload

WEBHOOK_URL = "/api/v1/payments/webhooks/stripe/"


@pytest.fixture
def verify_signature(mocker):
    return mocker.patch("payments.webhooks.views.StripeAdapter.verify_webhook_signature")


@pytest.fixture
def mock_process_delay(mocker):
    return mocker.patch("payments.tasks.process_webhook_event.delay")


def post_webhook(client, payload: dict, signature: str = "t=1,v1=abc"):
    headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
    return client.post(
        WEBHOOK_URL,
        data=json.dumps(payload),
        content_type="application/json",
        **headers,
    )


@pytest.mark.django_db
class TestStripeWebhookView:
    def test_new_event_queued(self, client, verify_signature, mock_process_delay):
        payload = build_event_payload("evt_new_1", "payment_intent.succeeded", {"id": "pi_1"})
        verify_signature.return_value = payload

        response = post_webhook(client, payload)

        assert response.status_code == 200
        assert response.content == b"Accepted"
        event = WebhookEvent.objects.get(stripe_event_id="evt_new_1")
        assert event.status == WebhookEventStatus.PENDING
        assert event.event_type == "payment_intent.succeeded"
        assert event.payload == payload
        mock_process_delay.assert_called_once_with(str(event.id))

    def test_signature_passed_through(self, client, verify_signature, mock_process_delay):
        payload = build_event_payload("evt_sig", "payment_intent.succeeded", {})
        verify_signature.return_value = payload

        post_webhook(client, payload, signature="t=123,v1=deadbeef")

        raw_body, signature = verify_signature.call_args.args
        assert signature == "t=123,v1=deadbeef"
        assert json.loads(raw_body) == payload

    def test_missing_signature(self, client, verify_signature, mock_process_delay):
        response = post_webhook(client, {"id": "evt_1"}, signature="")

        assert response.status_code == 400
        assert response.content == b"Missing signature"
        verify_signature.assert_not_called()
        mock_process_delay.assert_not_called()

    def test_invalid_signature(self, client, verify_signature, mock_process_delay):
        verify_signature.side_effect = GatewayInvalidRequestError("Invalid webhook signature")

        response = post_webhook(client, {"id": "evt_1"})

        assert response.status_code == 400
        assert response.content == b"Invalid signature"
        assert not WebhookEvent.objects.exists()

    def test_non_utf8_body_rejected(self, client, mock_process_delay):
        response = client.post(
            WEBHOOK_URL,
            data=b"\xff\xfe\x00garbage",
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
        )

        assert response.status_code == 400
        assert response.content == b"Invalid signature"
        assert not WebhookEvent.objects.exists()
        mock_process_delay.assert_not_called()

    @pytest.mark.parametrize("payload", [{"type": "payment_intent.succeeded"}, {"id": "evt_1"}])
    def test_missing_id_or_type(self, client, verify_signature, mock_process_delay, payload):
        verify_signature.return_value = payload

        response = post_webhook(client, payload)

        assert response.status_code == 400
        assert response.content == b"Invalid event"

    @pytest.mark.parametrize(
        "status", [WebhookEventStatus.PROCESSED, WebhookEventStatus.PROCESSING]
    )
    def test_duplicate_handled_event(self, client, verify_signature, mock_process_delay, status):
        event = WebhookEventFactory(stripe_event_id="evt_dup", status=status)
        verify_signature.return_value = event.payload

        response = post_webhook(client, event.payload)

        assert response.status_code == 200
        assert response.content == b"Already processed"
        mock_process_delay.assert_not_called()
        assert WebhookEvent.objects.count() == 1

    @pytest.mark.parametrize("status", [WebhookEventStatus.PENDING, WebhookEventStatus.FAILED])
    def test_unfinished_event_requeued(self, client, verify_signature, mock_process_delay, status):
        event = WebhookEventFactory(stripe_event_id="evt_retry", status=status)
        verify_signature.return_value = event.payload

        response = post_webhook(client, event.payload)

        assert response.status_code == 200
        assert response.content == b"Accepted"
        mock_process_delay.assert_called_once_with(str(event.id))

    def test_get_not_allowed(self, client):
        response = client.get(WEBHOOK_URL)

        assert response.status_code == 405
