"""
Admin payout console.

Every method takes the caller's AuthContext and requires the admin role
(stored UserRole rows). Non-admins get 403 "Forbidden: Admin access
required".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db.models import Exists, OuterRef
from django.utils import timezone

from authentication.models import Profile
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult
from payments.locks import compare_and_set
from payments.models import Invoice, Payout, ProviderPayoutAccount
from payments.services.escrow_release_service import EscrowReleaseService
from payments.state_machines import (
    PAID_INVOICE_STATUSES,
    PAYOUT_TRANSITIONS,
    PayoutStatus,
    sources_for,
)

if TYPE_CHECKING:
    from typing import Any

    from django.db.models import QuerySet

    from authentication.context import AuthContext
    from authentication.models import User

UNKNOWN_PROVIDER_NAME = "Proveedor desconocido"
UNTITLED_JOB = "Sin título"


def _provider_name(user: User | None) -> str:
    if user is None:
        return UNKNOWN_PROVIDER_NAME
    try:
        name = user.profile.full_name
    except Profile.DoesNotExist:
        name = ""
    return name or UNKNOWN_PROVIDER_NAME


def _job_title(invoice: Invoice | None) -> str:
    if invoice is None:
        return UNTITLED_JOB
    return invoice.job.title or UNTITLED_JOB


def get_payout_or_404(payout_id) -> Payout:
    try:
        return Payout.objects.select_related("invoice", "invoice__job").get(pk=payout_id)
    except Payout.DoesNotExist:
        raise NotFoundError(
            "Pago no encontrado",
            error_code="PAYOUT_NOT_FOUND",
            details={"payout_id": str(payout_id)},
        ) from None


def serialize_payout(payout: Payout) -> dict[str, Any]:
    return {
        "id": str(payout.id),
        "invoice_id": str(payout.invoice_id),
        "provider_id": str(payout.provider_id),
        "amount": payout.amount,
        "currency": payout.currency,
        "status": payout.status,
        "stripe_transfer_id": payout.stripe_transfer_id,
        "paid_at": payout.paid_at.isoformat() if payout.paid_at else None,
        "notes": payout.notes,
        "failure_reason": payout.failure_reason,
        "created_at": payout.created_at.isoformat() if payout.created_at else None,
    }


class AdminPayoutService(BaseService):
    """
    Payout administration for operations staff.

    Methods:
        list_payouts: All payouts with provider/invoice/job context and a summary
        list_paid_invoices: Paid invoices with has_payout
        invoices_without_payout: Paid invoices nobody has paid out yet
        create_payout: Manual pending payout for an invoice
        mark_payout_paid: Record an out-of-band payment
        release_payout: Transfer an existing payout through Stripe
    """

    @classmethod
    def list_payouts(cls, ctx: AuthContext) -> ServiceResult[dict]:
        ctx.require_admin()

        payouts = list(
            Payout.objects.select_related(
                "provider__profile", "invoice", "invoice__job"
            ).order_by("-created_at")
        )

        rows = []
        for payout in payouts:
            row = serialize_payout(payout)
            row["provider_name"] = _provider_name(payout.provider)
            row["invoice_status"] = payout.invoice.status
            row["job_title"] = _job_title(payout.invoice)
            rows.append(row)

        paid = [p for p in payouts if p.status == PayoutStatus.PAID]
        pending = [p for p in payouts if p.status == PayoutStatus.PENDING]
        summary = {
            "total_paid": sum(p.amount for p in paid),
            "pending_amount": sum(p.amount for p in pending),
            "total_payouts": len(payouts),
            "paid_count": len(paid),
            "pending_count": len(pending),
        }
        return ServiceResult.success({"payouts": rows, "summary": summary})

    @classmethod
    def paid_invoices_queryset(cls) -> QuerySet[Invoice]:
        return (
            Invoice.objects.filter(status__in=PAID_INVOICE_STATUSES)
            .select_related("provider__profile", "job")
            .annotate(has_payout=Exists(Payout.objects.filter(invoice_id=OuterRef("pk"))))
            .order_by("-created_at")
        )

    @classmethod
    def list_paid_invoices(cls, ctx: AuthContext) -> ServiceResult[dict]:
        ctx.require_admin()
        invoices = [
            cls._serialize_paid_invoice(invoice) for invoice in cls.paid_invoices_queryset()
        ]
        return ServiceResult.success({"invoices": invoices})

    @classmethod
    def invoices_without_payout(cls, ctx: AuthContext) -> ServiceResult[dict]:
        ctx.require_admin()
        invoices = [
            cls._serialize_paid_invoice(invoice)
            for invoice in cls.paid_invoices_queryset().filter(has_payout=False)
        ]
        return ServiceResult.success({"invoices": invoices})

    @classmethod
    def create_payout(
        cls,
        ctx: AuthContext,
        invoice_id,
        amount,
        notes: str = "",
    ) -> ServiceResult[dict]:
        """
        Create a pending payout for an invoice.

        The invoice only has to exist; its status is not checked.

        Raises:
            ValidationError: Missing invoice_id or amount <= 0
            NotFoundError: Invoice does not exist
            ConflictError: The invoice already has a payout
        """
        ctx.require_admin()

        if not invoice_id or amount is None:
            raise ValidationError(
                "invoice_id y amount son requeridos",
                error_code="MISSING_FIELDS",
            )
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            raise ValidationError(
                "El monto debe ser un número entero de centavos",
                error_code="INVALID_AMOUNT",
            ) from None
        if amount <= 0:
            raise ValidationError(
                "El monto debe ser mayor a cero",
                error_code="INVALID_AMOUNT",
            )

        invoice = Invoice.objects.filter(pk=invoice_id).first()
        if invoice is None:
            raise NotFoundError(
                "Factura no encontrada",
                error_code="INVOICE_NOT_FOUND",
                details={"invoice_id": str(invoice_id)},
            )

        if Payout.objects.filter(invoice_id=invoice.id).exists():
            raise ConflictError(
                "Ya existe un pago para esta factura",
                error_code="PAYOUT_EXISTS",
            )

        try:
            with cls.atomic():
                payout = Payout.objects.create(
                    invoice=invoice,
                    provider_id=invoice.provider_id,
                    amount=amount,
                    currency=invoice.currency,
                    status=PayoutStatus.PENDING,
                    notes=notes or "",
                )
        except IntegrityError:
            raise ConflictError(
                "Ya existe un pago para esta factura",
                error_code="PAYOUT_EXISTS",
            ) from None

        cls.get_logger().info(
            "Payout created by admin",
            extra={
                "payout_id": str(payout.id),
                "invoice_id": str(invoice.id),
                "amount_cents": amount,
                "admin_id": ctx.user_id,
            },
        )
        return ServiceResult.success({"payout": serialize_payout(payout)})

    @classmethod
    def mark_payout_paid(cls, ctx: AuthContext, payout_id) -> ServiceResult[dict]:
        """
        Record a payout as paid outside Stripe.

        Raises:
            NotFoundError: Payout does not exist
        """
        ctx.require_admin()
        payout = get_payout_or_404(payout_id)

        moved = compare_and_set(
            Payout,
            payout.id,
            {"status__in": sources_for(PAYOUT_TRANSITIONS, PayoutStatus.PAID)},
            status=PayoutStatus.PAID,
            paid_at=timezone.now(),
        )
        payout.refresh_from_db()
        if not moved:
            return ServiceResult.success(
                {"payout": serialize_payout(payout), "already_paid": True}
            )

        cls.get_logger().info(
            "Payout marked paid by admin",
            extra={"payout_id": str(payout.id), "admin_id": ctx.user_id},
        )
        return ServiceResult.success({"payout": serialize_payout(payout), "already_paid": False})

    @classmethod
    def release_payout(cls, ctx: AuthContext, payout_id) -> ServiceResult[dict]:
        """
        Transfer an existing payout to the provider's connected account.

        Raises:
            NotFoundError: Payout does not exist
            ConflictError: Payout already transferred or paid
            ConflictError: Provider account missing or not enabled
            GatewayError: Transfer failed; failure_reason is recorded
        """
        ctx.require_admin()
        payout = get_payout_or_404(payout_id)

        if payout.is_transferred:
            raise ConflictError(
                "El pago ya fue transferido",
                error_code="PAYOUT_ALREADY_TRANSFERRED",
            )
        if payout.status == PayoutStatus.PAID:
            raise ConflictError(
                "El pago ya fue marcado como pagado",
                error_code="PAYOUT_ALREADY_PAID",
            )

        account = ProviderPayoutAccount.for_provider(payout.provider_id)
        if account is None or not account.stripe_account_id:
            raise ConflictError(
                "El proveedor no tiene una cuenta de Stripe conectada",
                error_code="PAYOUT_ACCOUNT_MISSING",
            )
        if not account.is_ready_for_payouts:
            raise ConflictError(
                f"La cuenta del proveedor está en estado '{account.onboarding_status}', "
                "debe estar 'enabled'",
                error_code="PAYOUT_ACCOUNT_NOT_ENABLED",
            )

        transfer = EscrowReleaseService.transfer_payout(payout, payout.invoice, account)
        payout.refresh_from_db()

        cls.get_logger().info(
            "Payout released by admin",
            extra={
                "payout_id": str(payout.id),
                "transfer_id": transfer.transfer_id,
                "admin_id": ctx.user_id,
            },
        )
        return ServiceResult.success(
            {"payout": serialize_payout(payout), "transfer_id": transfer.transfer_id}
        )

    @staticmethod
    def _serialize_paid_invoice(invoice: Invoice) -> dict[str, Any]:
        return {
            "id": str(invoice.id),
            "job_id": str(invoice.job_id),
            "provider_id": str(invoice.provider_id),
            "subtotal_provider": invoice.subtotal_provider,
            "status": invoice.status,
            "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
            "provider_name": _provider_name(invoice.provider),
            "job_title": _job_title(invoice),
            "has_payout": invoice.has_payout,
        }
