"""
Tests for Stripe adapter.

Tests cover:
- Idempotency key generation
- Helper functions (is_retryable_gateway_error, backoff_delay)
- Error translation for each Stripe exception type
- Successful API operations and the parameters sent to Stripe
- Bounded retry of retrieve_status
- Webhook signature verification
"""

import json
import uuid
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe
from django.test import override_settings

from authentication.tests.factories import UserFactory
from payments.adapters import (
    IdempotencyKeyGenerator,
    StripeAdapter,
    backoff_delay,
    is_retryable_gateway_error,
)
from payments.exceptions import (
    GatewayCardDeclinedError,
    GatewayInsufficientFundsError,
    GatewayInvalidAccountError,
    GatewayInvalidRequestError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)


def _authorize():
    return StripeAdapter.create_authorization(
        amount_cents=35000,
        job_id="job-1",
        user_id="user-1",
        customer_id="cus_test",
        idempotency_key="visit_auth:job-1:1:abcd1234",
    )


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    def test_generate_key_format(self):
        """Should generate key in correct format."""
        entity_id = uuid.uuid4()
        key = IdempotencyKeyGenerator.generate(
            operation="visit_auth",
            entity_id=entity_id,
            attempt=1,
        )

        parts = key.split(":")
        assert len(parts) == 4
        assert parts[0] == "visit_auth"
        assert parts[1] == str(entity_id)
        assert parts[2] == "1"
        assert len(parts[3]) == 8

    def test_same_inputs_produce_same_key(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "payout_transfer", entity_id
        ) == IdempotencyKeyGenerator.generate("payout_transfer", entity_id)

    def test_different_attempts_produce_different_keys(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "capture", entity_id, attempt=1
        ) != IdempotencyKeyGenerator.generate("capture", entity_id, attempt=2)

    def test_different_operations_produce_different_keys(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "capture", entity_id
        ) != IdempotencyKeyGenerator.generate("cancel", entity_id)


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestIsRetryableGatewayError:
    def test_retryable_errors(self):
        assert is_retryable_gateway_error(GatewayRateLimitError("Rate limited")) is True
        assert is_retryable_gateway_error(GatewayUnavailableError("Unavailable")) is True
        assert is_retryable_gateway_error(GatewayTimeoutError("Timeout")) is True

    def test_non_retryable_errors(self):
        assert is_retryable_gateway_error(GatewayCardDeclinedError("Declined")) is False
        assert is_retryable_gateway_error(GatewayInsufficientFundsError("No funds")) is False
        assert is_retryable_gateway_error(GatewayInvalidAccountError("Bad account")) is False
        assert is_retryable_gateway_error(GatewayInvalidRequestError("Bad request")) is False

    def test_non_gateway_errors(self):
        assert is_retryable_gateway_error(ValueError("test")) is False
        assert is_retryable_gateway_error(RuntimeError("test")) is False


class TestBackoffDelay:
    def test_exponential_growth(self):
        """Delays are 1, 2, 4 seconds plus up to 25% jitter."""
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 2.0 <= backoff_delay(1) <= 2.5
        assert 4.0 <= backoff_delay(2) <= 5.0

    def test_respects_max_delay(self):
        assert backoff_delay(10, base=1.0, max_delay=60.0) <= 75.0

    def test_custom_base(self):
        assert 2.0 <= backoff_delay(0, base=2.0) <= 2.5


# =============================================================================
# Error Translation Tests
# =============================================================================


class TestStripeAdapterErrorTranslation:
    """Stripe exceptions are translated to GatewayError subclasses."""

    def test_card_declined_error(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(GatewayCardDeclinedError) as exc_info:
            _authorize()

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.gateway_code == "card_declined"
        assert exc_info.value.error_code == "CARD_DECLINED"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds_error(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error(
            message="Your card has insufficient funds.",
            decline_code="insufficient_funds",
        )

        with pytest.raises(GatewayInsufficientFundsError) as exc_info:
            _authorize()

        assert exc_info.value.decline_code == "insufficient_funds"

    def test_invalid_request_error(self, mock_stripe_payment_intent, invalid_request_error):
        mock_stripe_payment_intent.create.side_effect = invalid_request_error()

        with pytest.raises(GatewayInvalidRequestError) as exc_info:
            _authorize()

        assert exc_info.value.gateway_code == "resource_missing"
        assert exc_info.value.is_retryable is False

    def test_invalid_account_error(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="The destination account is not valid",
            code="account_invalid",
        )

        with pytest.raises(GatewayInvalidAccountError):
            StripeAdapter.create_transfer(
                amount_cents=90000,
                destination_account="acct_missing",
                metadata={},
                idempotency_key="payout_transfer:1:1:abcd",
            )

    def test_rate_limit_error(self, mock_stripe_payment_intent, rate_limit_error):
        mock_stripe_payment_intent.create.side_effect = rate_limit_error

        with pytest.raises(GatewayRateLimitError) as exc_info:
            _authorize()

        assert exc_info.value.is_retryable is True

    def test_api_connection_error(self, mock_stripe_payment_intent, api_connection_error):
        mock_stripe_payment_intent.create.side_effect = api_connection_error

        with pytest.raises(GatewayUnavailableError) as exc_info:
            _authorize()

        assert exc_info.value.gateway_code == "api_connection_error"

    def test_timeout_error(self, mock_stripe_payment_intent, timeout_error):
        mock_stripe_payment_intent.create.side_effect = timeout_error

        with pytest.raises(GatewayTimeoutError) as exc_info:
            _authorize()

        assert exc_info.value.is_retryable is True

    def test_api_error(self, mock_stripe_payment_intent, api_error):
        mock_stripe_payment_intent.create.side_effect = api_error

        with pytest.raises(GatewayUnavailableError) as exc_info:
            _authorize()

        assert exc_info.value.gateway_code == "api_error"

    def test_authentication_error(self, mock_stripe_payment_intent, authentication_error):
        mock_stripe_payment_intent.create.side_effect = authentication_error

        with pytest.raises(GatewayInvalidRequestError) as exc_info:
            _authorize()

        assert exc_info.value.gateway_code == "authentication_error"


# =============================================================================
# Visit Fee Operations
# =============================================================================


class TestVisitFeeOperations:
    def test_create_authorization(self, mock_stripe_payment_intent):
        result = _authorize()

        assert result.reference_id == "pi_test123456"
        assert result.client_secret == "pi_test123456_secret_abc123"
        assert result.status == "requires_payment_method"

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["amount"] == 35000
        assert kwargs["currency"] == "mxn"
        assert kwargs["capture_method"] == "manual"
        assert kwargs["customer"] == "cus_test"
        assert kwargs["idempotency_key"] == "visit_auth:job-1:1:abcd1234"
        assert kwargs["metadata"] == {
            "type": "visit_fee_authorization",
            "job_id": "job-1",
            "user_id": "user-1",
        }

    def test_configures_api_key_and_disables_sdk_retries(
        self, mock_stripe_payment_intent, mock_stripe_http_client
    ):
        with override_settings(STRIPE_SECRET_KEY="sk_test_other", STRIPE_API_TIMEOUT_SECONDS=7):
            _authorize()

        assert stripe.api_key == "sk_test_other"
        assert stripe.max_network_retries == 0
        mock_stripe_http_client.assert_called_with(timeout=7)

    def test_retrieve_status(self, mock_stripe_payment_intent):
        snapshot = StripeAdapter.retrieve_status("pi_test123456")

        mock_stripe_payment_intent.retrieve.assert_called_once_with("pi_test123456")
        assert snapshot.id == "pi_test123456"
        assert snapshot.status == "requires_capture"
        assert snapshot.amount == 35000
        assert snapshot.client_secret == "pi_test123456_secret_abc123"

    def test_capture(self, mock_stripe_payment_intent):
        snapshot = StripeAdapter.capture("pi_test123456", idempotency_key="capture:job:1:abcd")

        mock_stripe_payment_intent.capture.assert_called_once_with(
            "pi_test123456", idempotency_key="capture:job:1:abcd"
        )
        assert snapshot.status == "succeeded"

    def test_cancel(self, mock_stripe_payment_intent):
        snapshot = StripeAdapter.cancel("pi_test123456", idempotency_key="cancel:job:1:abcd")

        mock_stripe_payment_intent.cancel.assert_called_once_with(
            "pi_test123456", idempotency_key="cancel:job:1:abcd"
        )
        assert snapshot.status == "canceled"

    def test_capture_is_not_retried(self, mock_stripe_payment_intent, api_error):
        mock_stripe_payment_intent.capture.side_effect = api_error

        with pytest.raises(GatewayUnavailableError):
            StripeAdapter.capture("pi_test123456", idempotency_key="capture:job:1:abcd")

        assert mock_stripe_payment_intent.capture.call_count == 1


class TestRetrieveStatusRetry:
    @pytest.fixture(autouse=True)
    def no_backoff(self):
        with patch("payments.adapters.stripe_adapter.backoff_delay", return_value=0):
            yield

    def test_retries_transient_errors(
        self, mock_stripe_payment_intent, mock_payment_intent, rate_limit_error
    ):
        mock_stripe_payment_intent.retrieve.side_effect = [
            rate_limit_error,
            mock_payment_intent(status="succeeded"),
        ]

        snapshot = StripeAdapter.retrieve_status("pi_test123456")

        assert snapshot.status == "succeeded"
        assert mock_stripe_payment_intent.retrieve.call_count == 2

    @override_settings(STRIPE_READ_MAX_RETRIES=2)
    def test_gives_up_after_retry_budget(self, mock_stripe_payment_intent, api_error):
        mock_stripe_payment_intent.retrieve.side_effect = api_error

        with pytest.raises(GatewayUnavailableError):
            StripeAdapter.retrieve_status("pi_test123456")

        assert mock_stripe_payment_intent.retrieve.call_count == 3

    def test_does_not_retry_permanent_errors(
        self, mock_stripe_payment_intent, invalid_request_error
    ):
        mock_stripe_payment_intent.retrieve.side_effect = invalid_request_error()

        with pytest.raises(GatewayInvalidRequestError):
            StripeAdapter.retrieve_status("pi_missing")

        assert mock_stripe_payment_intent.retrieve.call_count == 1


# =============================================================================
# Invoice Operations
# =============================================================================


class TestInvoiceOperations:
    def test_create_invoice_charge(self, mock_stripe_payment_intent):
        metadata = {"type": "invoice_payment", "invoice_id": "inv-1"}

        result = StripeAdapter.create_invoice_charge(
            amount_cents=110000,
            customer_id="cus_test",
            metadata=metadata,
            transfer_group="inv-1",
            idempotency_key="invoice_charge:inv-1:1:abcd",
        )

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["amount"] == 110000
        assert kwargs["transfer_group"] == "inv-1"
        assert kwargs["metadata"] == metadata
        assert "capture_method" not in kwargs
        assert result.reference_id == "pi_test123456"

    def test_create_checkout_session(self, mock_stripe_checkout):
        result = StripeAdapter.create_checkout_session(
            amount_cents=110000,
            product_name="Factura de trabajo",
            metadata={"type": "invoice_payment", "invoice_id": "inv-1"},
            success_url="https://chamby.mx/success",
            cancel_url="https://chamby.mx/cancel",
            customer_id="cus_test",
            description="Reparación de fuga",
        )

        assert result.session_id == "cs_test_123"
        assert result.url == "https://checkout.stripe.com/c/pay/cs_test_123"

        kwargs = mock_stripe_checkout.create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        line_item = kwargs["line_items"][0]
        assert line_item["quantity"] == 1
        assert line_item["price_data"]["unit_amount"] == 110000
        assert line_item["price_data"]["product_data"] == {
            "name": "Factura de trabajo",
            "description": "Reparación de fuga",
        }


# =============================================================================
# Payouts and Refunds
# =============================================================================


class TestPayoutOperations:
    def test_create_transfer(self, mock_stripe_transfer):
        result = StripeAdapter.create_transfer(
            amount_cents=90000,
            destination_account="acct_provider_123",
            metadata={"invoice_id": "inv_1"},
            idempotency_key="payout_transfer:inv_1:1:abcd",
            transfer_group="inv_1",
        )

        assert result.transfer_id == "tr_test123456"
        assert result.amount_cents == 90000
        assert result.destination_account == "acct_provider_123"
        assert result.transfer_group == "inv_1"

        kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert kwargs["destination"] == "acct_provider_123"
        assert kwargs["transfer_group"] == "inv_1"

    def test_create_transfer_without_group(self, mock_stripe_transfer):
        StripeAdapter.create_transfer(
            amount_cents=90000,
            destination_account="acct_provider_123",
            metadata={},
            idempotency_key="payout_transfer:inv_1:1:abcd",
        )

        assert "transfer_group" not in mock_stripe_transfer.create.call_args.kwargs

    def test_find_transfer_matches_payout(self, mock_stripe_transfer):
        mock_stripe_transfer.list.return_value = SimpleNamespace(
            data=[
                SimpleNamespace(
                    id="tr_other",
                    amount=5000,
                    currency="mxn",
                    destination="acct_provider_123",
                    metadata={"payout_id": "payout_other"},
                ),
                SimpleNamespace(
                    id="tr_match",
                    amount=90000,
                    currency="mxn",
                    destination="acct_provider_123",
                    metadata={"payout_id": "payout_1"},
                ),
            ]
        )

        result = StripeAdapter.find_transfer(transfer_group="inv_1", payout_id="payout_1")

        assert result.transfer_id == "tr_match"
        assert result.amount_cents == 90000
        assert result.destination_account == "acct_provider_123"
        assert result.transfer_group == "inv_1"
        mock_stripe_transfer.list.assert_called_once_with(transfer_group="inv_1", limit=100)

    def test_find_transfer_none(self, mock_stripe_transfer):
        mock_stripe_transfer.list.return_value = SimpleNamespace(data=[])

        assert StripeAdapter.find_transfer(transfer_group="inv_1", payout_id="payout_1") is None

    def test_find_transfer_error_translated(self, mock_stripe_transfer, api_error):
        mock_stripe_transfer.list.side_effect = api_error

        with pytest.raises(GatewayUnavailableError):
            StripeAdapter.find_transfer(transfer_group="inv_1", payout_id="payout_1")

    def test_create_refund_full(self, mock_stripe_refund):
        result = StripeAdapter.create_refund("pi_test123456", idempotency_key="refund:1:1:abcd")

        assert result.refund_id == "re_test123456"
        assert result.payment_intent_id == "pi_test123456"
        assert "amount" not in mock_stripe_refund.create.call_args.kwargs

    def test_create_refund_partial(self, mock_stripe_refund):
        StripeAdapter.create_refund(
            "pi_test123456", idempotency_key="refund:1:1:abcd", amount_cents=10000
        )

        assert mock_stripe_refund.create.call_args.kwargs["amount"] == 10000


# =============================================================================
# Customers
# =============================================================================


@pytest.mark.django_db
class TestEnsureCustomer:
    def test_uses_stored_customer(self, mock_stripe_customer):
        user = UserFactory()
        user.profile.stripe_customer_id = "cus_stored"
        user.profile.save()

        assert StripeAdapter.ensure_customer(user) == "cus_stored"
        mock_stripe_customer.list.assert_not_called()

    def test_reuses_customer_found_by_email(self, mock_stripe_customer):
        user = UserFactory()
        mock_stripe_customer.list.return_value = SimpleNamespace(
            data=[SimpleNamespace(id="cus_existing")]
        )

        assert StripeAdapter.ensure_customer(user) == "cus_existing"
        mock_stripe_customer.create.assert_not_called()

        user.profile.refresh_from_db()
        assert user.profile.stripe_customer_id == "cus_existing"

    def test_creates_customer(self, mock_stripe_customer):
        user = UserFactory()

        assert StripeAdapter.ensure_customer(user) == "cus_new_123"

        kwargs = mock_stripe_customer.create.call_args.kwargs
        assert kwargs["email"] == user.email
        assert kwargs["metadata"] == {"user_id": str(user.pk)}
        user.profile.refresh_from_db()
        assert user.profile.stripe_customer_id == "cus_new_123"


# =============================================================================
# Webhook Verification
# =============================================================================


class TestVerifyWebhookSignature:
    def test_valid_signature_returns_event(self):
        event = {"id": "evt_1", "type": "payment_intent.succeeded"}
        payload = json.dumps(event).encode()

        with patch(
            "payments.adapters.stripe_adapter.stripe.WebhookSignature.verify_header"
        ) as verify:
            result = StripeAdapter.verify_webhook_signature(payload, "t=1,v1=abc")

        assert result == event
        verify.assert_called_once_with(payload.decode(), "t=1,v1=abc", "whsec_test_chamby")

    def test_invalid_signature(self):
        with patch(
            "payments.adapters.stripe_adapter.stripe.WebhookSignature.verify_header",
            side_effect=stripe.SignatureVerificationError("No signatures found", "bad"),
        ):
            with pytest.raises(GatewayInvalidRequestError) as exc_info:
                StripeAdapter.verify_webhook_signature(b"{}", "bad")

        assert exc_info.value.gateway_code == "signature_verification_failed"

    def test_non_utf8_body_is_a_signature_failure(self):
        with patch(
            "payments.adapters.stripe_adapter.stripe.WebhookSignature.verify_header"
        ) as verify:
            with pytest.raises(GatewayInvalidRequestError) as exc_info:
                StripeAdapter.verify_webhook_signature(b"\xff\xfe{}", "t=1,v1=abc")

        assert exc_info.value.gateway_code == "signature_verification_failed"
        verify.assert_not_called()

    def test_invalid_payload(self):
        with patch("payments.adapters.stripe_adapter.stripe.WebhookSignature.verify_header"):
            with pytest.raises(GatewayInvalidRequestError) as exc_info:
                StripeAdapter.verify_webhook_signature(b"not json", "t=1,v1=abc")

        assert exc_info.value.gateway_code == "invalid_payload"
