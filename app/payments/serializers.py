"""
Serializers for the payments API.

Request serializers only check shape (types, required keys). Business rules
and their Spanish error messages live in the services, so an invalid action
or line item is reported the same way from the API and from a task.

Provides:
- VisitAuthorizationRequestSerializer: POST visit-authorization/
- VisitConfirmationRequestSerializer: POST visit-confirmation/
- CreateInvoiceRequestSerializer: POST invoices/
- CreatePayoutRequestSerializer: POST admin/payouts/
- JobPaymentStatusSerializer: GET jobs/{job_id}/status/
"""

from __future__ import annotations

from rest_framework import serializers


class VisitAuthorizationRequestSerializer(serializers.Serializer):
    job_id = serializers.UUIDField(help_text="Job whose visit fee is authorized")


class VisitConfirmationRequestSerializer(serializers.Serializer):
    """
    Validated request for the visit confirmation handshake.

    action is left as free text; the service rejects unknown actions with
    "Acción inválida".
    """

    job_id = serializers.UUIDField()
    action = serializers.CharField(
        max_length=50,
        help_text=(
            "provider_confirm, client_confirm, client_dispute, "
            "admin_resolve_capture or admin_resolve_release"
        ),
    )
    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        default=None,
        help_text="Dispute or resolution reason",
    )


class LineItemSerializer(serializers.Serializer):
    description = serializers.CharField(allow_blank=True)
    amount = serializers.IntegerField(help_text="Unit price in centavos")
    quantity = serializers.IntegerField(required=False, default=1)


class CreateInvoiceRequestSerializer(serializers.Serializer):
    """Provider's invoice for a job. Empty line_items are rejected by the service."""

    job_id = serializers.UUIDField()
    line_items = LineItemSerializer(many=True, required=False, default=list)


class CreatePayoutRequestSerializer(serializers.Serializer):
    invoice_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    amount = serializers.IntegerField(
        required=False,
        allow_null=True,
        default=None,
        help_text="Payout amount in centavos",
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class JobPaymentStatusSerializer(serializers.Serializer):
    """Read-only payment status of a job, labelled for the caller's role."""

    job_id = serializers.UUIDField()
    role = serializers.CharField()
    visit_fee = serializers.CharField()
    visit_fee_label = serializers.CharField()
    invoice = serializers.CharField()
    invoice_label = serializers.CharField()
