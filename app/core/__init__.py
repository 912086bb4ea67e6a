"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. Business logic does not
go here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - AuthenticationError: Caller is not authenticated
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found
    - PermissionDeniedError: Authorization failures
    - ConflictError: State conflicts (already paid, already transferred...)
    - ExternalServiceError: Third-party service failures

API (configured in settings):
    - core.exception_handler.api_exception_handler: DRF error envelope
    - core.views.health_check: Liveness/database probe

Usage:
    from core.models import BaseModel, UUIDPrimaryKeyMixin
    from core.services import BaseService, ServiceResult
    from core.exceptions import ConflictError, NotFoundError

Note:
    Django models are NOT imported here to avoid AppRegistryNotReady errors.
    Import them directly from core.models.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    AuthenticationError,
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "AuthenticationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
]
