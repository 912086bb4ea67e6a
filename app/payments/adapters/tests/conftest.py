"""
Pytest fixtures for Stripe adapter tests.

Sections:
    - Mock Stripe Objects
    - Mock Stripe Error Fixtures
    - Mock Stripe API Fixtures
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe

STRIPE_MODULE = "payments.adapters.stripe_adapter.stripe"


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)


@dataclass
class MockStripeList:
    """Mock Stripe list response with data attribute."""

    items: list[MockStripeObject]

    @property
    def data(self) -> list[MockStripeObject]:
        return self.items


@pytest.fixture
def mock_payment_intent():
    """Create a mock PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "requires_payment_method",
        amount: int = 35000,
        client_secret: str | None = "pi_test123456_secret_abc123",
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": "mxn",
                "client_secret": client_secret,
                "metadata": metadata or {},
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError with an optional decline code."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message, None, code)
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    def _create(
        message: str = "No such payment_intent: 'pi_missing'",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message, "intent", code=code)

    return _create


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError("Too many requests hit the API too quickly.")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError("Could not connect to Stripe.")


@pytest.fixture
def timeout_error():
    return stripe.APIConnectionError("Request to Stripe timed out.")


@pytest.fixture
def api_error():
    return stripe.APIError("Something went wrong on Stripe's end.")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError("Invalid API Key provided.")


# =============================================================================
# Mock Stripe API Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_stripe_http_client():
    """Keep _configure_stripe from building a real HTTP client."""
    with patch(f"{STRIPE_MODULE}.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    """Mock stripe.PaymentIntent API."""
    with patch(f"{STRIPE_MODULE}.PaymentIntent") as mock:
        mock.create.return_value = mock_payment_intent()
        mock.retrieve.return_value = mock_payment_intent(status="requires_capture")
        mock.capture.return_value = mock_payment_intent(status="succeeded", client_secret=None)
        mock.cancel.return_value = mock_payment_intent(status="canceled", client_secret=None)
        yield mock


@pytest.fixture
def mock_stripe_transfer():
    with patch(f"{STRIPE_MODULE}.Transfer") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "tr_test123456",
                "object": "transfer",
                "amount": 90000,
                "currency": "mxn",
                "destination": "acct_provider_123",
                "metadata": {"invoice_id": "inv_1"},
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_refund():
    with patch(f"{STRIPE_MODULE}.Refund") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "re_test123456",
                "object": "refund",
                "amount": 35000,
                "status": "succeeded",
                "payment_intent": "pi_test123456",
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_checkout():
    with patch(f"{STRIPE_MODULE}.checkout.Session") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "cs_test_123",
                "object": "checkout.session",
                "url": "https://checkout.stripe.com/c/pay/cs_test_123",
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_customer():
    with patch(f"{STRIPE_MODULE}.Customer") as mock:
        mock.list.return_value = MockStripeList(items=[])
        mock.create.return_value = MockStripeObject({"id": "cus_new_123", "object": "customer"})
        yield mock
