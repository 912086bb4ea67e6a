"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # The test client talks plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    settings.STRIPE_SECRET_KEY = "sk_test_chamby"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test_chamby"


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full payment lifecycle journeys)
    - test_views.py, test_*_service.py, test_tasks.py, etc. → integration
    - test_models.py, test_pricing.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_service.py",
        "test_tasks.py",
        "test_workers.py",
        "test_webhook_handlers.py",
        "test_webhook_views.py",
        "test_exception_handler.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_signals.py",
        "test_context.py",
        "test_pricing.py",
        "test_status.py",
        "test_metadata.py",
        "test_state_transitions.py",
        "test_locks.py",
        "test_stripe_adapter.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filepath = str(item.fspath)
        filename = filepath.split("/")[-1]

        # Check patterns in priority order
        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(filename.endswith(pattern) for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture(autouse=True)
def redis_connection(mocker):
    """
    Replace the Redis connection used by payments.locks.

    Every lock is acquired (SET NX returns True) and released (the Lua
    script returns 1). Tests that need contention set return values on
    the returned mock.
    """
    client = mocker.MagicMock()
    client.set.return_value = True
    client.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=client)
    return client


# =============================================================================
# Users and API Clients
# =============================================================================


@pytest.fixture
def client_user(db):
    """User who books and pays for jobs."""
    from authentication.tests.factories import UserFactory

    return UserFactory(email_verified=True)


@pytest.fixture
def provider_user(db):
    """User assigned to do the work."""
    from authentication.tests.factories import UserFactory

    user = UserFactory(email_verified=True)
    user.profile.first_name = "Mario"
    user.profile.last_name = "López"
    user.profile.save()
    return user


@pytest.fixture
def admin_user(db):
    """User holding the stored admin role."""
    from authentication.tests.factories import AdminUserFactory

    return AdminUserFactory()


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory to create JWT-authenticated API clients for any user.

    Usage:
        def test_example(authenticated_client_factory, client_user):
            api = authenticated_client_factory(client_user)
            response = api.get("/api/v1/notifications/")
    """
    from rest_framework.test import APIClient
    from rest_framework_simplejwt.tokens import RefreshToken

    def _make_client(user):
        api = APIClient()
        refresh = RefreshToken.for_user(user)
        api.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return api

    return _make_client
