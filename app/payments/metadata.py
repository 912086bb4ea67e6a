"""
Typed parsing of Stripe object metadata.

Webhook handlers never read raw metadata dicts. parse_metadata turns the
metadata attached by StripeAdapter into one of:

    VisitFeeMetadata        type "visit_fee" / "visit_fee_authorization"
    InvoicePaymentMetadata  type "invoice_payment"
    UnknownMetadata         anything else (logged and ignored)

Missing or ill-typed keys raise WebhookMetadataError; the webhook event is
marked failed and is not retried.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Union

from payments.exceptions import WebhookMetadataError

VISIT_FEE_TYPES = frozenset({"visit_fee", "visit_fee_authorization"})
INVOICE_PAYMENT_TYPE = "invoice_payment"


@dataclass(frozen=True)
class VisitFeeMetadata:
    job_id: uuid.UUID
    user_id: str


@dataclass(frozen=True)
class InvoicePaymentMetadata:
    invoice_id: uuid.UUID
    job_id: uuid.UUID
    provider_id: str
    user_id: str


@dataclass(frozen=True)
class UnknownMetadata:
    type: str


PaymentMetadata = Union[VisitFeeMetadata, InvoicePaymentMetadata, UnknownMetadata]


def _require_str(metadata: dict, key: str) -> str:
    value = metadata.get(key)
    if not isinstance(value, str) or not value.strip():
        raise WebhookMetadataError(
            f"Metadata '{key}' ausente o inválido",
            details={"key": key},
        )
    return value.strip()


def _require_uuid(metadata: dict, key: str) -> uuid.UUID:
    value = _require_str(metadata, key)
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise WebhookMetadataError(
            f"Metadata '{key}' no es un UUID",
            details={"key": key, "value": value},
        ) from e


def parse_metadata(metadata: dict | None) -> PaymentMetadata:
    """
    Parse Stripe metadata into a typed variant.

    Raises:
        WebhookMetadataError: Known type with missing or ill-typed keys
    """
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise WebhookMetadataError("Metadata no es un objeto")

    kind = metadata.get("type") or ""

    if kind in VISIT_FEE_TYPES:
        # Visit-fee checkout sessions carry the payer as client_id
        payer_key = "user_id" if metadata.get("user_id") else "client_id"
        return VisitFeeMetadata(
            job_id=_require_uuid(metadata, "job_id"),
            user_id=_require_str(metadata, payer_key),
        )

    if kind == INVOICE_PAYMENT_TYPE:
        return InvoicePaymentMetadata(
            invoice_id=_require_uuid(metadata, "invoice_id"),
            job_id=_require_uuid(metadata, "job_id"),
            provider_id=_require_str(metadata, "provider_id"),
            user_id=_require_str(metadata, "user_id"),
        )

    return UnknownMetadata(type=str(kind))
