"""
DRF views for the payments app.

Views stay thin: they validate request shape with a serializer, build the
caller's AuthContext once, call a service and render its ServiceResult.
Domain errors raised by services are rendered by
core.exception_handler.api_exception_handler.

Endpoints:
    POST /api/v1/payments/visit-authorization/ - Authorize the visit fee
    GET  /api/v1/payments/visit-authorization/{job_id}/ - Authorization status
    POST /api/v1/payments/visit-confirmation/ - Visit confirmation handshake
    POST /api/v1/payments/invoices/ - Create or fetch the job's invoice
    GET  /api/v1/payments/invoices/{invoice_id}/ - Invoice detail
    POST /api/v1/payments/invoices/{invoice_id}/checkout/ - Hosted checkout
    GET  /api/v1/payments/invoices/client/ - Caller's invoices as client
    GET  /api/v1/payments/invoices/provider/ - Caller's invoices as provider
    GET  /api/v1/payments/jobs/{job_id}/status/ - Job payment status
    GET  /api/v1/payments/payouts/ - Caller's payouts + summary
    GET  /api/v1/payments/payouts/{payout_id}/ - Payout detail (owner or admin)
    GET  /api/v1/payments/earnings/ - Caller's earnings
    GET  /api/v1/payments/admin/payouts/ - Payouts + summary (admin)
    POST /api/v1/payments/admin/payouts/ - Create payout (admin)
    POST /api/v1/payments/admin/payouts/{payout_id}/mark-paid/ - (admin)
    POST /api/v1/payments/admin/payouts/{payout_id}/release/ - (admin)
    GET  /api/v1/payments/admin/invoices/paid/ - Paid invoices (admin)

Security:
    - All endpoints require a JWT; the webhook endpoint lives in
      payments.webhooks.views
    - Ownership and admin role are checked by the services
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.context import AuthContext
from core.exceptions import PermissionDeniedError
from jobs.selectors import get_job_or_404
from payments.models import Invoice
from payments.serializers import (
    CreateInvoiceRequestSerializer,
    CreatePayoutRequestSerializer,
    JobPaymentStatusSerializer,
    VisitAuthorizationRequestSerializer,
    VisitConfirmationRequestSerializer,
)
from payments.services import (
    AdminPayoutService,
    InvoiceService,
    ProviderPayoutService,
    VisitAuthorizationService,
)
from payments.status import (
    ROLE_CUSTOMER,
    ROLE_PROVIDER,
    get_invoice_label,
    get_job_payment_status,
    get_visit_fee_label,
)

# =============================================================================
# Visit Fee
# =============================================================================


class VisitAuthorizationView(APIView):
    """
    Create the manual-capture authorization for a job's visit fee.

    POST /api/v1/payments/visit-authorization/

    Request body:
        {"job_id": "<uuid>"}

    Returns:
        {"success": true, "client_secret": ..., "payment_intent_id": ...,
         "status": ..., "already_exists": bool}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_visit_authorization",
        summary="Authorize visit fee",
        request=VisitAuthorizationRequestSerializer,
        responses={
            200: OpenApiResponse(description="Authorization created or reused"),
            403: OpenApiResponse(description="Caller is not the job's client"),
            404: OpenApiResponse(description="Job not found"),
            409: OpenApiResponse(description="Visit fee already paid"),
        },
        tags=["Payments - Visit Fee"],
    )
    def post(self, request):
        serializer = VisitAuthorizationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ctx = AuthContext.from_request(request)
        result = VisitAuthorizationService.create_authorization(
            ctx, serializer.validated_data["job_id"]
        )
        return Response(result.to_response())


class VisitAuthorizationStatusView(APIView):
    """
    GET /api/v1/payments/visit-authorization/{job_id}/

    Stored authorization plus the live gateway status. needs_creation is true
    when there is nothing usable to confirm.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_visit_authorization_status",
        summary="Visit fee authorization status",
        tags=["Payments - Visit Fee"],
    )
    def get(self, request, job_id):
        ctx = AuthContext.from_request(request)
        result = VisitAuthorizationService.get_authorization_status(ctx, job_id)
        return Response(result.to_response())


class VisitConfirmationView(APIView):
    """
    Visit confirmation handshake and admin dispute resolution.

    POST /api/v1/payments/visit-confirmation/

    Request body:
        {"job_id": "<uuid>", "action": "client_confirm", "reason": "..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="confirm_visit",
        summary="Confirm, dispute or resolve a visit",
        request=VisitConfirmationRequestSerializer,
        responses={
            200: OpenApiResponse(description="Action applied (or already applied)"),
            400: OpenApiResponse(description="Acción inválida"),
            403: OpenApiResponse(description="Caller may not perform this action"),
            409: OpenApiResponse(description="Job not in a state that allows it"),
            502: OpenApiResponse(description="Capture or void failed"),
        },
        tags=["Payments - Visit Fee"],
    )
    def post(self, request):
        serializer = VisitConfirmationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ctx = AuthContext.from_request(request)
        result = VisitAuthorizationService.confirm_visit(
            ctx,
            data["job_id"],
            data["action"],
            reason=data.get("reason"),
        )
        return Response(result.to_response())


# =============================================================================
# Invoices
# =============================================================================


class InvoiceCreateView(APIView):
    """
    Provider bills a job.

    POST /api/v1/payments/invoices/

    Request body:
        {"job_id": "<uuid>",
         "line_items": [{"description": "Cambio de llave", "amount": 45000, "quantity": 1}]}

    Returns 201 for a new invoice, 200 with already_exists=true otherwise.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_invoice",
        summary="Create or fetch the job's invoice",
        request=CreateInvoiceRequestSerializer,
        responses={
            200: OpenApiResponse(description="Invoice already existed"),
            201: OpenApiResponse(description="Invoice created"),
            400: OpenApiResponse(description="Invalid line items"),
            403: OpenApiResponse(description="Caller is not the job's provider"),
        },
        tags=["Payments - Invoices"],
    )
    def post(self, request):
        serializer = CreateInvoiceRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ctx = AuthContext.from_request(request)
        result = InvoiceService.create_or_get_invoice(
            ctx,
            data["job_id"],
            data["line_items"],
        )
        already_exists = result.data.get("already_exists", False)
        return Response(
            result.to_response(),
            status=status.HTTP_200_OK if already_exists else status.HTTP_201_CREATED,
        )


class InvoiceCheckoutView(APIView):
    """
    POST /api/v1/payments/invoices/{invoice_id}/checkout/

    Returns:
        {"success": true, "checkout_url": ..., "session_id": ...}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_invoice_checkout",
        summary="Hosted checkout for an invoice",
        request=None,
        tags=["Payments - Invoices"],
    )
    def post(self, request, invoice_id):
        ctx = AuthContext.from_request(request)
        result = InvoiceService.create_checkout(ctx, invoice_id)
        return Response(result.to_response())


class InvoiceDetailView(APIView):
    """
    GET /api/v1/payments/invoices/{invoice_id}/

    Client, provider or admin. The client also receives the PaymentIntent
    client_secret while the invoice is payable.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_invoice",
        summary="Invoice detail",
        responses={
            200: OpenApiResponse(description="Invoice, items and job"),
            403: OpenApiResponse(description="Caller is not a party to the invoice"),
            404: OpenApiResponse(description="Invoice not found"),
        },
        tags=["Payments - Invoices"],
    )
    def get(self, request, invoice_id):
        ctx = AuthContext.from_request(request)
        result = InvoiceService.get_invoice(ctx, invoice_id)
        return Response(result.to_response())


class ClientInvoiceListView(APIView):
    """GET /api/v1/payments/invoices/client/ - Caller's invoices as client"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_client_invoices",
        summary="Invoices billed to me",
        tags=["Payments - Invoices"],
    )
    def get(self, request):
        ctx = AuthContext.from_request(request)
        result = InvoiceService.list_client_invoices(ctx)
        return Response(result.to_response())


class ProviderInvoiceListView(APIView):
    """GET /api/v1/payments/invoices/provider/ - Caller's invoices as provider"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_provider_invoices",
        summary="Invoices I issued",
        tags=["Payments - Invoices"],
    )
    def get(self, request):
        ctx = AuthContext.from_request(request)
        result = InvoiceService.list_provider_invoices(ctx)
        return Response(result.to_response())


# =============================================================================
# Job Payment Status
# =============================================================================


class JobPaymentStatusView(APIView):
    """
    GET /api/v1/payments/jobs/{job_id}/status/

    Derived from stored fields only. Labels follow the caller's side of the
    job; admins see the provider labels.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_job_payment_status",
        summary="Job payment status",
        responses={200: JobPaymentStatusSerializer},
        tags=["Payments - Status"],
    )
    def get(self, request, job_id):
        ctx = AuthContext.from_request(request)
        job = get_job_or_404(job_id)

        if job.is_client(ctx.user_id):
            role = ROLE_CUSTOMER
        elif job.is_provider(ctx.user_id) or ctx.is_admin:
            role = ROLE_PROVIDER
        else:
            raise PermissionDeniedError(
                "No tienes acceso a este trabajo",
                error_code="NOT_JOB_PARTY",
            )

        invoice = Invoice.objects.filter(job_id=job.id).first()
        payment_status = get_job_payment_status(job, invoice)
        serializer = JobPaymentStatusSerializer(
            {
                "job_id": job.id,
                "role": role,
                "visit_fee": payment_status.visit_fee,
                "visit_fee_label": get_visit_fee_label(payment_status.visit_fee, role),
                "invoice": payment_status.invoice,
                "invoice_label": get_invoice_label(payment_status.invoice, role),
            }
        )
        return Response({"success": True, **serializer.data})


# =============================================================================
# Provider Payouts and Earnings
# =============================================================================


class ProviderPayoutListView(APIView):
    """
    GET /api/v1/payments/payouts/

    The caller's payouts plus totals (paid, pending, last paid date).
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_provider_payouts",
        summary="My payouts",
        tags=["Payments - Payouts"],
    )
    def get(self, request):
        ctx = AuthContext.from_request(request)
        result = ProviderPayoutService.list_payouts(ctx)
        return Response(result.to_response())


class ProviderPayoutDetailView(APIView):
    """GET /api/v1/payments/payouts/{payout_id}/ - Owner provider or admin"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payout",
        summary="Payout detail",
        responses={
            200: OpenApiResponse(description="Payout, invoice and job"),
            403: OpenApiResponse(description="Caller does not own the payout"),
            404: OpenApiResponse(description="Payout not found"),
        },
        tags=["Payments - Payouts"],
    )
    def get(self, request, payout_id):
        ctx = AuthContext.from_request(request)
        result = ProviderPayoutService.get_payout(ctx, payout_id)
        return Response(result.to_response())


class ProviderEarningsView(APIView):
    """
    GET /api/v1/payments/earnings/

    Lifetime and year-to-date earnings, a monthly series, the last paid
    invoices and invoices still waiting for payment.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_provider_earnings",
        summary="My earnings",
        tags=["Payments - Payouts"],
    )
    def get(self, request):
        ctx = AuthContext.from_request(request)
        result = ProviderPayoutService.earnings_summary(ctx)
        return Response(result.to_response())


# =============================================================================
# Admin Payout Console
# =============================================================================


class AdminPayoutListCreateView(APIView):
    """
    GET  /api/v1/payments/admin/payouts/ - Every payout plus a summary
    POST /api/v1/payments/admin/payouts/ - Create a pending payout

    Admin role required (403 "Forbidden: Admin access required").
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_payouts",
        summary="List payouts",
        tags=["Payments - Admin"],
    )
    def get(self, request):
        ctx = AuthContext.from_request(request)
        result = AdminPayoutService.list_payouts(ctx)
        return Response(result.to_response())

    @extend_schema(
        operation_id="create_payout",
        summary="Create payout",
        request=CreatePayoutRequestSerializer,
        responses={
            201: OpenApiResponse(description="Payout created"),
            400: OpenApiResponse(description="invoice_id and amount > 0 required"),
            404: OpenApiResponse(description="Invoice not found"),
            409: OpenApiResponse(description="Invoice already has a payout"),
        },
        tags=["Payments - Admin"],
    )
    def post(self, request):
        serializer = CreatePayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ctx = AuthContext.from_request(request)
        result = AdminPayoutService.create_payout(
            ctx,
            data["invoice_id"],
            data["amount"],
            notes=data["notes"],
        )
        return Response(result.to_response(), status=status.HTTP_201_CREATED)


class AdminPayoutMarkPaidView(APIView):
    """POST /api/v1/payments/admin/payouts/{payout_id}/mark-paid/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="mark_payout_paid",
        summary="Mark payout paid",
        request=None,
        tags=["Payments - Admin"],
    )
    def post(self, request, payout_id):
        ctx = AuthContext.from_request(request)
        result = AdminPayoutService.mark_payout_paid(ctx, payout_id)
        return Response(result.to_response())


class AdminPayoutReleaseView(APIView):
    """
    POST /api/v1/payments/admin/payouts/{payout_id}/release/

    Transfers the payout to the provider's connected account.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="release_payout",
        summary="Release payout",
        request=None,
        responses={
            200: OpenApiResponse(description="Transfer created"),
            409: OpenApiResponse(description="Already transferred/paid or account not enabled"),
            502: OpenApiResponse(description="Transfer failed"),
        },
        tags=["Payments - Admin"],
    )
    def post(self, request, payout_id):
        ctx = AuthContext.from_request(request)
        result = AdminPayoutService.release_payout(ctx, payout_id)
        return Response(result.to_response())


class AdminPaidInvoicesView(APIView):
    """GET /api/v1/payments/admin/invoices/paid/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_paid_invoices",
        summary="Paid invoices with payout flag",
        tags=["Payments - Admin"],
    )
    def get(self, request):
        ctx = AuthContext.from_request(request)
        if request.query_params.get("without_payout", "").lower() == "true":
            result = AdminPayoutService.invoices_without_payout(ctx)
        else:
            result = AdminPayoutService.list_paid_invoices(ctx)
        return Response(result.to_response())
