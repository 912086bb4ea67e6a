"""
Provider-facing payout and earnings reads.

Providers only ever see their own payouts and invoices; admins may open any
payout detail. Amounts are centavos.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import PermissionDeniedError
from core.services import BaseService, ServiceResult
from payments.models import Invoice, Payout
from payments.services.admin_payout_service import get_payout_or_404, serialize_payout
from payments.services.invoice_service import (
    CHECKOUT_PAYABLE_STATUSES,
    UNTITLED_JOB,
    serialize_invoice,
    serialize_items,
)
from payments.state_machines import PAID_INVOICE_STATUSES, PayoutStatus

if TYPE_CHECKING:
    from typing import Any

    from authentication.context import AuthContext

RECENT_PAID_LIMIT = 10


def _earned_at(invoice: Invoice):
    return timezone.localtime(invoice.paid_at or invoice.created_at)


class ProviderPayoutService(BaseService):
    """
    Payout history and earnings for the calling provider.

    Methods:
        list_payouts: Caller's payouts with a summary
        get_payout: Payout detail for its provider or an admin
        earnings_summary: Lifetime/YTD totals, monthly series, outstanding invoices
    """

    @classmethod
    def list_payouts(cls, ctx: AuthContext) -> ServiceResult[dict]:
        ctx.require_authenticated()

        payouts = list(
            Payout.objects.filter(provider_id=ctx.user_id)
            .select_related("invoice", "invoice__job")
            .order_by("-created_at")
        )

        rows = []
        for payout in payouts:
            row = serialize_payout(payout)
            row["invoice_status"] = payout.invoice.status
            row["job_title"] = payout.invoice.job.title or UNTITLED_JOB
            rows.append(row)

        paid = [p for p in payouts if p.status == PayoutStatus.PAID]
        pending = [p for p in payouts if p.status == PayoutStatus.PENDING]
        last_paid_at = max((p.paid_at for p in paid if p.paid_at), default=None)
        summary = {
            "total_paid": sum(p.amount for p in paid),
            "pending_amount": sum(p.amount for p in pending),
            "last_paid_at": last_paid_at.isoformat() if last_paid_at else None,
            "total_payouts": len(payouts),
            "paid_count": len(paid),
            "pending_count": len(pending),
        }
        return ServiceResult.success({"payouts": rows, "summary": summary})

    @classmethod
    def get_payout(cls, ctx: AuthContext, payout_id) -> ServiceResult[dict]:
        """
        Payout detail with its invoice, items and job.

        Client contact details are included for admins only.

        Raises:
            NotFoundError: Payout does not exist
            PermissionDeniedError: Caller neither owns the payout nor is admin
        """
        ctx.require_authenticated()
        payout = get_payout_or_404(payout_id)

        is_admin = ctx.is_admin
        if not (is_admin or ctx.is_user(payout.provider_id)):
            raise PermissionDeniedError(
                "No tienes permiso para ver este pago",
                error_code="NOT_PAYOUT_OWNER",
            )

        invoice = payout.invoice
        job = invoice.job
        client = None
        if is_admin:
            client = {
                "id": str(invoice.client_id),
                "full_name": invoice.client.display_name,
                "email": invoice.client.email,
            }

        return ServiceResult.success(
            {
                "payout": serialize_payout(payout),
                "invoice": {**serialize_invoice(invoice), "items": serialize_items(invoice)},
                "job": {
                    "id": str(job.id),
                    "title": job.title,
                    "category": job.category,
                    "status": job.status,
                },
                "client": client,
                "is_admin": is_admin,
            }
        )

    @classmethod
    def earnings_summary(cls, ctx: AuthContext) -> ServiceResult[dict]:
        """
        Earnings dashboard for the caller.

        Earnings are the provider's share (subtotal_provider) of invoices the
        client has paid, whether or not they were released yet. Outstanding
        invoices are those still waiting for the client's payment.
        """
        ctx.require_authenticated()

        paid_invoices = sorted(
            Invoice.objects.filter(
                provider_id=ctx.user_id, status__in=PAID_INVOICE_STATUSES
            ).select_related("job"),
            key=_earned_at,
            reverse=True,
        )
        outstanding_invoices = (
            Invoice.objects.filter(provider_id=ctx.user_id, status__in=CHECKOUT_PAYABLE_STATUSES)
            .select_related("job")
            .order_by("-created_at")
        )

        this_year = timezone.localtime().year
        monthly: dict[str, int] = {}
        for invoice in paid_invoices:
            month = _earned_at(invoice).strftime("%Y-%m")
            monthly[month] = monthly.get(month, 0) + invoice.subtotal_provider

        recent_paid = [
            {
                "invoice_id": str(invoice.id),
                "job_title": invoice.job.title or UNTITLED_JOB,
                "paid_date": _earned_at(invoice).isoformat(),
                "amount_received": invoice.subtotal_provider,
                "status": invoice.status,
            }
            for invoice in paid_invoices[:RECENT_PAID_LIMIT]
        ]
        outstanding: list[dict[str, Any]] = [
            {
                "invoice_id": str(invoice.id),
                "job_title": invoice.job.title or UNTITLED_JOB,
                "amount_owed": invoice.subtotal_provider,
                "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
            }
            for invoice in outstanding_invoices
        ]

        totals = {
            "lifetime_earnings": sum(i.subtotal_provider for i in paid_invoices),
            "ytd_earnings": sum(
                i.subtotal_provider for i in paid_invoices if _earned_at(i).year == this_year
            ),
            "outstanding_amount": sum(row["amount_owed"] for row in outstanding),
            "paid_invoices_count": len(paid_invoices),
        }
        return ServiceResult.success(
            {
                "totals": totals,
                "monthly": [
                    {"month": month, "amount": amount} for month, amount in sorted(monthly.items())
                ],
                "recent_paid": recent_paid,
                "outstanding": outstanding,
            }
        )
