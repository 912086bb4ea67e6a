"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for expected outcomes
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Views build an AuthContext and call a service; services hold every
    business rule and talk to the gateway adapter; models hold data.

Pattern Comparison:
    - ServiceResult: successful outcomes, including idempotent short-circuits
      such as {"already_exists": True}
    - Exceptions (core.exceptions): every failure; the API exception
      handler renders them

Usage:
    from core.services import BaseService, ServiceResult

    class InvoiceService(BaseService):
        @classmethod
        def create_or_get_invoice(cls, ctx, job_id, line_items):
            existing = Invoice.objects.filter(job_id=job_id).first()
            if existing:
                return ServiceResult.success({"invoice": ..., "already_exists": True})

            with cls.atomic():
                invoice = Invoice.objects.create(...)

            cls.get_logger().info("Invoice created", extra={"invoice_id": str(invoice.id)})
            return ServiceResult.success({"invoice": ..., "already_exists": False})

    # In view
    result = InvoiceService.create_or_get_invoice(ctx, job_id, items)
    return Response(result.to_response(), status=201)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to the API response envelope.

        Dict payloads are flattened next to the success flag so clients
        read {"success": true, "client_secret": ..., "already_exists": false}.
        Any other payload is nested under "data".
        """
        if self.success:
            if isinstance(self.data, dict):
                return {"success": True, **self.data}
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Design Notes:
        - Use @classmethod (no instance state)
        - Services receive an explicit AuthContext, never request.user
        - Gateway calls happen outside atomic() blocks so a slow or failed
          Stripe request never holds row locks
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the service class for easy filtering."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around django.db.transaction.atomic() that keeps
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield
