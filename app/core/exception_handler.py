"""
DRF exception handler that renders every API error in one envelope.

Configured in settings as REST_FRAMEWORK["EXCEPTION_HANDLER"].

Response shape:
    {"success": false, "error": "<mensaje>", "error_code": "<CODE>"}

Mapping:
    - BaseApplicationError subclasses use their own http_status
    - DRF API exceptions (NotAuthenticated, PermissionDenied, ParseError...)
      keep DRF's status code and are flattened into the envelope
    - Django's Http404 / PermissionDenied are handled by DRF's default handler
    - Anything else is logged with its traceback and returned as a bare 500
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Error interno del servidor"

_STATUS_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_ERROR",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHENTICATED",
    status.HTTP_403_FORBIDDEN: "PERMISSION_DENIED",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


def api_exception_handler(exc, context):
    """Convert an exception raised in a DRF view into the error envelope."""
    view = context.get("view")
    view_name = view.__class__.__name__ if view is not None else None

    if isinstance(exc, BaseApplicationError):
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            "Request failed with application error",
            extra={
                "view": view_name,
                "error_code": exc.error_code,
                "status_code": exc.http_status,
                "details": exc.details,
            },
        )
        body = {
            "success": False,
            "error": exc.message,
            "error_code": exc.error_code,
        }
        # Gateway failures keep their raw provider details server-side
        if exc.details and exc.http_status < 500:
            body["details"] = exc.details
        return Response(body, status=exc.http_status)

    response = exception_handler(exc, context)
    if response is not None:
        data = response.data
        body = {
            "success": False,
            "error_code": _STATUS_ERROR_CODES.get(response.status_code, "ERROR"),
        }
        if isinstance(data, dict) and "detail" in data:
            body["error"] = str(data["detail"])
        else:
            body["error"] = "Datos inválidos"
            body["errors"] = data
        response.data = body
        return response

    logger.exception(
        "Unhandled exception in API view",
        extra={"view": view_name},
    )
    return Response(
        {
            "success": False,
            "error": INTERNAL_ERROR_MESSAGE,
            "error_code": "INTERNAL_ERROR",
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
