"""
Invoice creation, checkout and payment outcomes.

The provider bills the work once per job. The client pays the invoice
either through the PaymentIntent created with the invoice or through a
hosted Checkout Session; both carry the same invoice_payment metadata so the
webhook lands in mark_paid / mark_failed.

Money split (see payments.pricing):
    total_customer_amount = subtotal + customer_fee
    subtotal_provider     = subtotal - provider_fee
    Chamby keeps provider_fee + customer_fee until escrow release pays
    subtotal_provider to the provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from core.services import BaseService, ServiceResult
from jobs.models import OPEN_JOB_STATUSES, Job, JobStatus
from jobs.selectors import get_job_or_404
from notifications.models import NotificationKind
from notifications.services import NotificationService
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import GatewayError
from payments.locks import compare_and_set
from payments.models import Invoice, InvoiceItem
from payments.pricing import compute_invoice_totals, format_mxn
from payments.state_machines import INVOICE_TRANSITIONS, InvoiceStatus, sources_for

if TYPE_CHECKING:
    from typing import Any

    from authentication.context import AuthContext

INVOICE_PAYMENT_TYPE = "invoice_payment"
CHECKOUT_PRODUCT_NAME = "Factura del trabajo"
CHECKOUT_PAYABLE_STATUSES = (InvoiceStatus.ACCEPTED, InvoiceStatus.PENDING, InvoiceStatus.FAILED)
UNTITLED_JOB = "Trabajo sin título"


def get_invoice_or_404(invoice_id) -> Invoice:
    try:
        return Invoice.objects.select_related("job", "client", "provider").get(pk=invoice_id)
    except Invoice.DoesNotExist:
        raise NotFoundError(
            "Factura no encontrada",
            error_code="INVOICE_NOT_FOUND",
            details={"invoice_id": str(invoice_id)},
        ) from None


def invoice_payment_metadata(invoice: Invoice) -> dict[str, str]:
    """Metadata attached to every Stripe object that pays an invoice."""
    return {
        "type": INVOICE_PAYMENT_TYPE,
        "invoice_id": str(invoice.id),
        "job_id": str(invoice.job_id),
        "provider_id": str(invoice.provider_id),
        "user_id": str(invoice.client_id),
    }


def serialize_invoice(invoice: Invoice) -> dict[str, Any]:
    return {
        "id": str(invoice.id),
        "job_id": str(invoice.job_id),
        "provider_id": str(invoice.provider_id),
        "client_id": str(invoice.client_id),
        "status": invoice.status,
        "subtotal": invoice.subtotal,
        "subtotal_provider": invoice.subtotal_provider,
        "chamby_commission_amount": invoice.chamby_commission_amount,
        "total_customer_amount": invoice.total_customer_amount,
        "currency": invoice.currency,
        "stripe_payment_intent_id": invoice.stripe_payment_intent_id or None,
        "paid_at": invoice.paid_at.isoformat() if invoice.paid_at else None,
        "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
    }


def serialize_items(invoice: Invoice) -> list[dict[str, Any]]:
    return [
        {
            "id": item.pk,
            "description": item.description,
            "unit_price": item.unit_price,
            "quantity": item.quantity,
            "total": item.total,
        }
        for item in invoice.items.all()
    ]


class InvoiceService(BaseService):
    """
    Service for invoices.

    Methods:
        create_or_get_invoice: Provider bills a job (idempotent per job)
        create_checkout: Client opens a hosted checkout for an invoice
        get_invoice: Invoice detail for its parties or an admin
        list_client_invoices: Caller's invoices as client
        list_provider_invoices: Caller's invoices as provider
        mark_paid: Webhook success path
        mark_failed: Webhook failure path
    """

    @classmethod
    def create_or_get_invoice(
        cls,
        ctx: AuthContext,
        job_id,
        line_items: list[dict] | None,
    ) -> ServiceResult[dict]:
        """
        Create the job's invoice, or return the existing one.

        Args:
            ctx: Caller; must be the job's assigned provider
            job_id: Job being billed
            line_items: [{description, amount, quantity}], amounts in centavos

        Returns:
            ServiceResult with {invoice, items, client_secret, already_exists}

        Raises:
            PermissionDeniedError: Caller is not the assigned provider
            ValidationError: Invalid line items
            GatewayError: Creating the invoice charge failed; the invoice row
                stays pending without a payment reference and the next call
                retries the charge
        """
        ctx.require_authenticated()
        job = get_job_or_404(job_id)
        if not job.is_provider(ctx.user_id):
            raise PermissionDeniedError(
                "No estás asignado a este trabajo",
                error_code="NOT_JOB_PROVIDER",
            )

        existing = Invoice.objects.filter(job_id=job.id).first()
        if existing is not None:
            return cls._existing_invoice_result(existing)

        items = cls._validate_line_items(line_items)
        subtotal = sum(item["total"] for item in items)
        if subtotal <= 0:
            raise ValidationError(
                "El total de la factura debe ser mayor a cero",
                error_code="INVALID_INVOICE_TOTAL",
            )
        totals = compute_invoice_totals(subtotal)

        try:
            with cls.atomic():
                invoice = Invoice.objects.create(
                    job=job,
                    provider_id=job.provider_id,
                    client_id=job.client_id,
                    status=InvoiceStatus.PENDING,
                    subtotal=totals.subtotal,
                    subtotal_provider=totals.subtotal_provider,
                    chamby_commission_amount=totals.chamby_commission_amount,
                    total_customer_amount=totals.total_customer_amount,
                    currency=settings.PAYMENT_CURRENCY,
                )
                InvoiceItem.objects.bulk_create(
                    [
                        InvoiceItem(
                            invoice=invoice,
                            description=item["description"],
                            unit_price=item["unit_price"],
                            quantity=item["quantity"],
                            total=item["total"],
                        )
                        for item in items
                    ]
                )
        except IntegrityError:
            # Lost the race on the one-invoice-per-job constraint
            existing = Invoice.objects.filter(job_id=job.id).first()
            if existing is None:
                raise
            return cls._existing_invoice_result(existing)

        cls.get_logger().info(
            "Invoice created",
            extra={
                "invoice_id": str(invoice.id),
                "job_id": str(job.id),
                "subtotal": totals.subtotal,
                "total_customer_amount": totals.total_customer_amount,
            },
        )

        client_secret = cls._ensure_invoice_charge(invoice)

        NotificationService.create_notification(
            recipient_id=invoice.client_id,
            type=NotificationKind.INVOICE_CREATED,
            title="Nueva factura recibida",
            message=f"Has recibido una factura por {format_mxn(invoice.total_customer_amount)}",
            link=f"/invoices/{invoice.id}",
            data={"invoice_id": str(invoice.id), "job_id": str(job.id)},
        )

        invoice.refresh_from_db()
        return ServiceResult.success(
            {
                "invoice": serialize_invoice(invoice),
                "items": serialize_items(invoice),
                "client_secret": client_secret,
                "already_exists": False,
            }
        )

    @classmethod
    def create_checkout(cls, ctx: AuthContext, invoice_id) -> ServiceResult[dict]:
        """
        Open a hosted Checkout Session for an invoice.

        Raises:
            PermissionDeniedError: Caller is not the invoice's client
            ConflictError: Invoice is not accepted, pending or failed
            GatewayError: Stripe failure
        """
        ctx.require_authenticated()
        invoice = get_invoice_or_404(invoice_id)
        if not ctx.is_user(invoice.client_id):
            raise PermissionDeniedError(
                "No eres el cliente de esta factura",
                error_code="NOT_INVOICE_CLIENT",
            )
        if invoice.status not in CHECKOUT_PAYABLE_STATUSES:
            raise ConflictError(
                f"La factura no se puede pagar en estado '{invoice.status}'",
                error_code="INVOICE_NOT_PAYABLE",
                details={"status": invoice.status},
            )

        customer_id = StripeAdapter.ensure_customer(invoice.client)
        frontend_url = settings.FRONTEND_URL.rstrip("/")
        session = StripeAdapter.create_checkout_session(
            amount_cents=invoice.total_customer_amount,
            product_name=CHECKOUT_PRODUCT_NAME,
            description=f"Pago de factura #{str(invoice.id)[:8]}",
            metadata=invoice_payment_metadata(invoice),
            success_url=f"{frontend_url}/active-jobs?invoice_paid=true",
            cancel_url=f"{frontend_url}/active-jobs?invoice_cancelled=true",
            customer_id=customer_id,
        )

        cls.get_logger().info(
            "Invoice checkout session created",
            extra={"invoice_id": str(invoice.id), "session_id": session.session_id},
        )
        return ServiceResult.success(
            {"checkout_url": session.url, "session_id": session.session_id}
        )

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def get_invoice(cls, ctx: AuthContext, invoice_id) -> ServiceResult[dict]:
        """
        Invoice detail for one of its parties or an admin.

        The client also gets the PaymentIntent client_secret while the
        invoice can still be paid, so the pay page can confirm it.

        Raises:
            NotFoundError: Invoice does not exist
            PermissionDeniedError: Caller is neither party nor admin
        """
        ctx.require_authenticated()
        invoice = get_invoice_or_404(invoice_id)

        is_client = ctx.is_user(invoice.client_id)
        if not (is_client or ctx.is_user(invoice.provider_id) or ctx.is_admin):
            raise PermissionDeniedError(
                "No tienes permiso para ver esta factura",
                error_code="NOT_INVOICE_PARTY",
            )

        client_secret = None
        payment_intent_status = None
        if (
            is_client
            and invoice.stripe_payment_intent_id
            and invoice.status in CHECKOUT_PAYABLE_STATUSES
        ):
            try:
                intent = StripeAdapter.retrieve_status(invoice.stripe_payment_intent_id)
                client_secret = intent.client_secret
                payment_intent_status = intent.status
            except GatewayError as e:
                cls.get_logger().warning(
                    "Could not read invoice PaymentIntent",
                    extra={"invoice_id": str(invoice.id), "error_code": e.error_code},
                )

        job = invoice.job
        return ServiceResult.success(
            {
                "invoice": serialize_invoice(invoice),
                "items": serialize_items(invoice),
                "job": {
                    "id": str(job.id),
                    "title": job.title,
                    "category": job.category,
                },
                "provider_name": invoice.provider.display_name,
                "client_secret": client_secret,
                "payment_intent_status": payment_intent_status,
            }
        )

    @classmethod
    def list_client_invoices(cls, ctx: AuthContext) -> ServiceResult[dict]:
        """The caller's invoices as client, newest first."""
        ctx.require_authenticated()
        invoices = (
            Invoice.objects.filter(client_id=ctx.user_id)
            .select_related("job", "provider__profile")
            .order_by("-created_at")
        )
        rows = [
            {
                "id": str(invoice.id),
                "job_id": str(invoice.job_id),
                "status": invoice.status,
                "total_customer_amount": invoice.total_customer_amount,
                "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
                "job_title": invoice.job.title or UNTITLED_JOB,
                "provider_name": invoice.provider.display_name,
            }
            for invoice in invoices
        ]
        return ServiceResult.success({"invoices": rows})

    @classmethod
    def list_provider_invoices(cls, ctx: AuthContext) -> ServiceResult[dict]:
        """The caller's invoices as provider, newest first."""
        ctx.require_authenticated()
        invoices = (
            Invoice.objects.filter(provider_id=ctx.user_id)
            .select_related("job", "client__profile")
            .order_by("-created_at")
        )
        rows = [
            {
                "id": str(invoice.id),
                "job_id": str(invoice.job_id),
                "status": invoice.status,
                "subtotal_provider": invoice.subtotal_provider,
                "total_customer_amount": invoice.total_customer_amount,
                "created_at": invoice.created_at.isoformat() if invoice.created_at else None,
                "job_title": invoice.job.title or UNTITLED_JOB,
                "client_name": invoice.client.display_name,
            }
            for invoice in invoices
        ]
        return ServiceResult.success({"invoices": rows})

    # =========================================================================
    # Payment Outcomes
    # =========================================================================

    @classmethod
    def mark_paid(cls, invoice_id, payment_intent_id: str | None = None) -> ServiceResult[dict]:
        """
        Record a successful invoice payment.

        Moves the invoice to paid, completes the job, notifies both parties
        and queues escrow release. Replays of the same event are no-ops.
        """
        invoice = get_invoice_or_404(invoice_id)
        logger = cls.get_logger()

        values: dict[str, Any] = {
            "status": InvoiceStatus.PAID,
            "paid_at": timezone.now(),
        }
        if payment_intent_id and not invoice.stripe_payment_intent_id:
            values["stripe_payment_intent_id"] = payment_intent_id

        moved = compare_and_set(
            Invoice,
            invoice.id,
            {"status__in": sources_for(INVOICE_TRANSITIONS, InvoiceStatus.PAID)},
            **values,
        )
        if not moved:
            logger.info(
                "Invoice payment already recorded",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )
            return ServiceResult.success({"invoice_id": str(invoice.id), "already_paid": True})

        compare_and_set(
            Job,
            invoice.job_id,
            {"status__in": OPEN_JOB_STATUSES},
            status=JobStatus.COMPLETED,
        )

        amount = format_mxn(invoice.total_customer_amount)
        data = {"invoice_id": str(invoice.id), "job_id": str(invoice.job_id)}
        NotificationService.create_notification(
            recipient_id=invoice.client_id,
            type=NotificationKind.INVOICE_PAID,
            title="Pago recibido",
            message=f"Tu pago de {amount} fue procesado correctamente.",
            link=f"/invoices/{invoice.id}",
            data=data,
        )
        NotificationService.create_notification(
            recipient_id=invoice.provider_id,
            type=NotificationKind.INVOICE_PAID,
            title="Factura pagada",
            message=f'El cliente pagó la factura de "{invoice.job.title}".',
            link=f"/invoices/{invoice.id}",
            data=data,
        )

        cls._queue_escrow_release(invoice.job_id)

        logger.info(
            "Invoice marked paid",
            extra={"invoice_id": str(invoice.id), "job_id": str(invoice.job_id)},
        )
        return ServiceResult.success({"invoice_id": str(invoice.id), "already_paid": False})

    @classmethod
    def mark_failed(cls, invoice_id, reason: str = "") -> ServiceResult[dict]:
        """Record a failed invoice payment and tell the client."""
        invoice = get_invoice_or_404(invoice_id)

        moved = compare_and_set(
            Invoice,
            invoice.id,
            {"status__in": sources_for(INVOICE_TRANSITIONS, InvoiceStatus.FAILED)},
            status=InvoiceStatus.FAILED,
        )
        if not moved:
            cls.get_logger().info(
                "Invoice payment failure ignored",
                extra={"invoice_id": str(invoice.id), "status": invoice.status},
            )
            return ServiceResult.success({"invoice_id": str(invoice.id), "updated": False})

        NotificationService.create_notification(
            recipient_id=invoice.client_id,
            type=NotificationKind.INVOICE_PAYMENT_FAILED,
            title="Pago fallido",
            message="No pudimos procesar el pago de tu factura. Intenta con otro método de pago.",
            link=f"/invoices/{invoice.id}",
            data={"invoice_id": str(invoice.id), "reason": reason},
        )

        cls.get_logger().warning(
            "Invoice payment failed",
            extra={"invoice_id": str(invoice.id), "reason": reason},
        )
        return ServiceResult.success({"invoice_id": str(invoice.id), "updated": True})

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _existing_invoice_result(cls, invoice: Invoice) -> ServiceResult[dict]:
        client_secret = None
        if invoice.stripe_payment_intent_id:
            try:
                client_secret = StripeAdapter.retrieve_status(
                    invoice.stripe_payment_intent_id
                ).client_secret
            except GatewayError as e:
                cls.get_logger().warning(
                    "Could not read invoice PaymentIntent",
                    extra={
                        "invoice_id": str(invoice.id),
                        "error_code": e.error_code,
                    },
                )
        elif invoice.status == InvoiceStatus.PENDING:
            client_secret = cls._ensure_invoice_charge(invoice)

        return ServiceResult.success(
            {
                "invoice": serialize_invoice(invoice),
                "items": serialize_items(invoice),
                "client_secret": client_secret,
                "already_exists": True,
            }
        )

    @classmethod
    def _ensure_invoice_charge(cls, invoice: Invoice) -> str | None:
        """Create the invoice PaymentIntent and store its reference."""
        customer_id = StripeAdapter.ensure_customer(invoice.client)
        result = StripeAdapter.create_invoice_charge(
            amount_cents=invoice.total_customer_amount,
            customer_id=customer_id,
            metadata=invoice_payment_metadata(invoice),
            transfer_group=str(invoice.id),
            idempotency_key=IdempotencyKeyGenerator.generate("invoice_charge", invoice.id),
        )

        stored = compare_and_set(
            Invoice,
            invoice.id,
            {"stripe_payment_intent_id": ""},
            stripe_payment_intent_id=result.reference_id,
        )
        if stored:
            invoice.stripe_payment_intent_id = result.reference_id
        else:
            cls.get_logger().info(
                "Invoice PaymentIntent already stored",
                extra={"invoice_id": str(invoice.id)},
            )
        return result.client_secret

    @staticmethod
    def _validate_line_items(line_items: list[dict] | None) -> list[dict]:
        if not line_items:
            raise ValidationError(
                "Se requiere al menos un concepto en la factura",
                error_code="LINE_ITEMS_REQUIRED",
            )

        items = []
        for index, raw in enumerate(line_items):
            description = str(raw.get("description") or "").strip()
            if not description:
                raise ValidationError(
                    "Cada concepto necesita una descripción",
                    error_code="INVALID_LINE_ITEM",
                    details={"index": index},
                )
            try:
                amount = int(raw.get("amount"))
                quantity = int(raw.get("quantity", 1))
            except (TypeError, ValueError):
                raise ValidationError(
                    "El monto y la cantidad deben ser números enteros",
                    error_code="INVALID_LINE_ITEM",
                    details={"index": index},
                ) from None
            if quantity < 1:
                raise ValidationError(
                    "La cantidad debe ser al menos 1",
                    error_code="INVALID_LINE_ITEM",
                    details={"index": index},
                )
            if amount < 0:
                raise ValidationError(
                    "El monto no puede ser negativo",
                    error_code="INVALID_LINE_ITEM",
                    details={"index": index},
                )
            items.append(
                {
                    "description": description,
                    "unit_price": amount,
                    "quantity": quantity,
                    "total": amount * quantity,
                }
            )
        return items

    @staticmethod
    def _queue_escrow_release(job_id) -> None:
        from payments.tasks import release_escrow_for_job

        transaction.on_commit(lambda: release_escrow_for_job.delay(str(job_id)))
