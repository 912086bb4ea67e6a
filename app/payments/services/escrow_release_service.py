"""
Escrow release: pay the provider's share of a paid invoice.

Chamby collects total_customer_amount from the client and holds it until
the job is complete. Release transfers subtotal_provider to the provider's
connected account with transfer_group = invoice id.

Flow (per invoice, under lock "escrow:release:<invoice_id>"):
    1. Payout already paid or transferred → already_released
    2. Provider account missing or not enabled → invoice ready_to_release,
       outcome queued
    3. Get or create the pending Payout (one per invoice)
    4. Look up an existing transfer for the payout (transfer_group = invoice
       id, metadata payout_id); only when none exists, transfer with an
       idempotency key derived from the payout id
       success → payout paid, invoice released, provider notified
       failure → failure_reason recorded, invoice ready_to_release, queued

Triggers:
    - invoice payment webhook (InvoiceService.mark_paid)
    - client confirming completion (JobCompletionService)
    - auto_complete_jobs sweep
    - admin release (AdminPayoutService.release_payout uses transfer_payout)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from notifications.models import NotificationKind
from notifications.services import NotificationService
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import GatewayError
from payments.locks import DistributedLock, compare_and_set
from payments.models import Invoice, Payout, ProviderPayoutAccount
from payments.pricing import format_mxn
from payments.state_machines import (
    INVOICE_TRANSITIONS,
    PAYOUT_TRANSITIONS,
    InvoiceStatus,
    PayoutStatus,
    sources_for,
)

if TYPE_CHECKING:
    from payments.adapters import TransferResult


OUTCOME_SKIPPED = "skipped"
OUTCOME_ALREADY_RELEASED = "already_released"
OUTCOME_QUEUED = "queued"
OUTCOME_RELEASED = "released"

RELEASABLE_INVOICE_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.READY_TO_RELEASE)
LOCK_TTL_SECONDS = 60


@dataclass
class ReleaseOutcome:
    outcome: str
    invoice_id: str | None = None
    payout_id: str | None = None
    transfer_id: str | None = None
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "invoice_id": self.invoice_id,
            "payout_id": self.payout_id,
            "transfer_id": self.transfer_id,
            "reason": self.reason,
        }


class EscrowReleaseService(BaseService):
    """
    Releases escrowed invoice funds to providers.

    Methods:
        release_for_job: Release the job's paid invoice, if any
        release_for_invoice: Release one invoice
        transfer_payout: Move an existing payout through the gateway
    """

    @classmethod
    def release_for_job(cls, job_id) -> ServiceResult[ReleaseOutcome]:
        invoice = Invoice.objects.filter(job_id=job_id, status=InvoiceStatus.PAID).first()
        if invoice is None:
            cls.get_logger().info(
                "No paid invoice for job, skipping escrow release",
                extra={"job_id": str(job_id)},
            )
            return ServiceResult.success(
                ReleaseOutcome(outcome=OUTCOME_SKIPPED, reason="no_paid_invoice")
            )
        return cls.release_for_invoice(invoice)

    @classmethod
    def release_for_invoice(cls, invoice: Invoice) -> ServiceResult[ReleaseOutcome]:
        """
        Release one invoice's provider share.

        Returns:
            ServiceResult with a ReleaseOutcome (released, queued,
            already_released or skipped)

        Raises:
            LockAcquisitionError: Another releaser held the lock too long
        """
        logger = cls.get_logger()
        log_context = {"invoice_id": str(invoice.id), "job_id": str(invoice.job_id)}

        with DistributedLock(f"escrow:release:{invoice.id}", ttl=LOCK_TTL_SECONDS):
            invoice.refresh_from_db()

            payout = Payout.objects.filter(invoice_id=invoice.id).first()
            if payout is not None and (
                payout.status == PayoutStatus.PAID or payout.is_transferred
            ):
                logger.info("Escrow already released", extra=log_context)
                return ServiceResult.success(
                    ReleaseOutcome(
                        outcome=OUTCOME_ALREADY_RELEASED,
                        invoice_id=str(invoice.id),
                        payout_id=str(payout.id),
                        transfer_id=payout.stripe_transfer_id,
                    )
                )

            if invoice.status not in RELEASABLE_INVOICE_STATUSES:
                logger.info(
                    "Invoice not releasable, skipping",
                    extra={**log_context, "status": invoice.status},
                )
                return ServiceResult.success(
                    ReleaseOutcome(
                        outcome=OUTCOME_SKIPPED,
                        invoice_id=str(invoice.id),
                        reason=f"invoice_{invoice.status}",
                    )
                )

            account = ProviderPayoutAccount.for_provider(invoice.provider_id)
            if account is None or not account.is_ready_for_payouts:
                cls._mark_ready_to_release(invoice)
                logger.info(
                    "Provider payout account not ready, escrow queued",
                    extra={
                        **log_context,
                        "onboarding_status": account.onboarding_status if account else None,
                    },
                )
                return ServiceResult.success(
                    ReleaseOutcome(
                        outcome=OUTCOME_QUEUED,
                        invoice_id=str(invoice.id),
                        reason="payout_account_not_ready",
                    )
                )

            if payout is None:
                payout, _ = Payout.objects.get_or_create(
                    invoice=invoice,
                    defaults={
                        "provider_id": invoice.provider_id,
                        "amount": invoice.subtotal_provider,
                        "currency": invoice.currency,
                        "status": PayoutStatus.PENDING,
                    },
                )

            try:
                transfer = cls.transfer_payout(payout, invoice, account)
            except GatewayError as e:
                cls._mark_ready_to_release(invoice)
                logger.error(
                    "Escrow transfer failed, invoice left ready_to_release",
                    extra={
                        **log_context,
                        "payout_id": str(payout.id),
                        "error_code": e.error_code,
                        "is_retryable": e.is_retryable,
                    },
                )
                return ServiceResult.success(
                    ReleaseOutcome(
                        outcome=OUTCOME_QUEUED,
                        invoice_id=str(invoice.id),
                        payout_id=str(payout.id),
                        reason=e.error_code,
                    )
                )

        return ServiceResult.success(
            ReleaseOutcome(
                outcome=OUTCOME_RELEASED,
                invoice_id=str(invoice.id),
                payout_id=str(payout.id),
                transfer_id=transfer.transfer_id,
            )
        )

    @classmethod
    def transfer_payout(
        cls,
        payout: Payout,
        invoice: Invoice,
        account: ProviderPayoutAccount,
    ) -> TransferResult:
        """
        Transfer a payout to the provider's connected account.

        On success the payout becomes paid, the invoice released and the
        provider is notified. On failure the gateway message is stored in
        payout.failure_reason and the error is re-raised.

        Raises:
            GatewayError: Transfer failed (never retried here)
        """
        try:
            transfer = StripeAdapter.find_transfer(
                transfer_group=str(invoice.id),
                payout_id=str(payout.id),
            )
            if transfer is not None:
                cls.get_logger().warning(
                    "Payout already transferred at Stripe, recording it",
                    extra={
                        "invoice_id": str(invoice.id),
                        "payout_id": str(payout.id),
                        "transfer_id": transfer.transfer_id,
                    },
                )
            else:
                transfer = StripeAdapter.create_transfer(
                    amount_cents=payout.amount,
                    destination_account=account.stripe_account_id,
                    metadata={
                        "payout_id": str(payout.id),
                        "invoice_id": str(invoice.id),
                        "job_id": str(invoice.job_id),
                        "provider_id": str(invoice.provider_id),
                    },
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "payout_transfer", payout.id
                    ),
                    transfer_group=str(invoice.id),
                )
        except GatewayError as e:
            compare_and_set(Payout, payout.pk, {}, failure_reason=e.message[:1000])
            raise

        now = timezone.now()
        compare_and_set(
            Payout,
            payout.pk,
            {"status__in": sources_for(PAYOUT_TRANSITIONS, PayoutStatus.PAID)},
            status=PayoutStatus.PAID,
            stripe_transfer_id=transfer.transfer_id,
            paid_at=now,
            failure_reason="",
        )
        compare_and_set(
            Invoice,
            invoice.pk,
            {"status__in": sources_for(INVOICE_TRANSITIONS, InvoiceStatus.RELEASED)},
            status=InvoiceStatus.RELEASED,
            released_at=now,
        )

        NotificationService.create_notification(
            recipient_id=invoice.provider_id,
            type=NotificationKind.PAYOUT_RELEASED,
            title="¡Pago liberado!",
            message=(
                f"Se depositaron {format_mxn(payout.amount)} a tu cuenta. "
                "Puede tardar 1-2 días hábiles en reflejarse."
            ),
            link="/provider-portal/earnings",
            data={
                "payout_id": str(payout.id),
                "invoice_id": str(invoice.id),
                "job_id": str(invoice.job_id),
            },
            idempotency_key=f"payout_released:{payout.id}",
        )

        cls.get_logger().info(
            "Escrow released",
            extra={
                "invoice_id": str(invoice.id),
                "payout_id": str(payout.id),
                "transfer_id": transfer.transfer_id,
                "amount_cents": payout.amount,
                "currency": settings.PAYMENT_CURRENCY,
            },
        )
        return transfer

    @classmethod
    def _mark_ready_to_release(cls, invoice: Invoice) -> bool:
        return compare_and_set(
            Invoice,
            invoice.pk,
            {"status__in": sources_for(INVOICE_TRANSITIONS, InvoiceStatus.READY_TO_RELEASE)},
            status=InvoiceStatus.READY_TO_RELEASE,
        )
