"""
Base exception classes for application-wide error handling.

Every domain failure raised by a service is a BaseApplicationError. The DRF
exception handler (core.exception_handler) turns it into the JSON envelope
{"success": false, "error": ..., "error_code": ...} using the class's
http_status.

Exception Hierarchy:
    BaseApplicationError (base, 500)
    ├── AuthenticationError - Missing or invalid caller identity (401)
    ├── ValidationError - Missing or malformed input (400)
    ├── PermissionDeniedError - Caller lacks role or ownership (403)
    ├── NotFoundError - Referenced job/invoice/payout absent (404)
    ├── ConflictError - Resource is in the wrong state (409)
    └── ExternalServiceError - Third-party service failure (502)

Usage:
    from core.exceptions import NotFoundError, ValidationError

    raise ValidationError("Se requieren conceptos", error_code="LINE_ITEMS_REQUIRED")

    raise NotFoundError(
        "Trabajo no encontrado",
        error_code="JOB_NOT_FOUND",
        details={"job_id": str(job_id)},
    )

Note:
    Messages are user-facing and written in Spanish. Put ids and other
    debugging context in details, never in the message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, etc.)
        http_status: Status code used when rendered by the API layer
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to the API error envelope.

        Example:
            {
                "success": False,
                "error": "Trabajo no encontrado",
                "error_code": "JOB_NOT_FOUND",
            }
        """
        result: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class AuthenticationError(BaseApplicationError):
    """
    Raised when the caller's identity is missing or cannot be resolved.

    Views normally never see this: DRF's IsAuthenticated answers 401 first.
    Services raise it when handed an anonymous AuthContext.
    """

    default_error_code: str = "UNAUTHENTICATED"
    http_status: int = 401


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Example:
        raise ValidationError(
            "Datos inválidos",
            details={"line_items": ["La cantidad debe ser al menos 1"]},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """Raised when a requested resource does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks the role or ownership an operation needs.

    Example:
        if job.client_id != ctx.user_id:
            raise PermissionDeniedError(
                "Solo el cliente puede autorizar la visita",
                error_code="NOT_JOB_CLIENT",
            )
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current resource state.

    Use for invalid state transitions and lost conditional-update races.
    Idempotent repeats are not conflicts: return a success result with an
    already_* flag instead.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    The payment gateway hierarchy (payments.exceptions.GatewayError)
    derives from this. Log the provider's raw error, but never return it
    to the client.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
