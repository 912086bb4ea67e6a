"""
Visit fee authorization and visit confirmation.

The visit fee is held on the client's card as a manual-capture
PaymentIntent when the job is booked. It is captured once the visit is
confirmed (by the client, or by an admin resolving a dispute) and voided
when an admin resolves a dispute in the client's favour.

Flow:
    1. create_authorization: client authorizes VISIT_FEE_CENTS
    2. confirm_visit("provider_confirm"): provider says the visit happened,
       client gets VISIT_CONFIRMATION_HOURS to answer
    3. confirm_visit("client_confirm"): capture, visit_fee_paid=True
       or confirm_visit("client_dispute"): escalate to support
    4. confirm_visit("admin_resolve_capture" | "admin_resolve_release"): only
       while the dispute is pending_support, under lock "visit:resolve:<job_id>";
       a repeated resolution returns already_resolved

Failure semantics:
    Capture and void run before any local write. A GatewayError propagates
    to the caller and the job row is left untouched, so visit_fee_paid is
    only ever set after Stripe confirmed the capture.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from core.services import BaseService, ServiceResult
from jobs.models import Job, VisitDisputeStatus
from jobs.selectors import get_job_or_404
from notifications.models import NotificationKind
from notifications.services import NotificationService
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.locks import DistributedLock, compare_and_set

if TYPE_CHECKING:
    from typing import Any

    from authentication.context import AuthContext


# PaymentIntent statuses
PI_REQUIRES_PAYMENT_METHOD = "requires_payment_method"
PI_REQUIRES_CONFIRMATION = "requires_confirmation"
PI_REQUIRES_ACTION = "requires_action"
PI_PROCESSING = "processing"
PI_REQUIRES_CAPTURE = "requires_capture"
PI_SUCCEEDED = "succeeded"
PI_CANCELED = "canceled"

# Statuses that still need the client to finish paying on the frontend
CLIENT_SECRET_STATUSES = frozenset(
    {PI_REQUIRES_PAYMENT_METHOD, PI_REQUIRES_CONFIRMATION, PI_REQUIRES_ACTION}
)
RELEASABLE_STATUSES = frozenset(
    {PI_REQUIRES_CAPTURE, PI_REQUIRES_PAYMENT_METHOD, PI_REQUIRES_CONFIRMATION}
)

# confirm_visit actions
PROVIDER_CONFIRM = "provider_confirm"
CLIENT_CONFIRM = "client_confirm"
CLIENT_DISPUTE = "client_dispute"
ADMIN_RESOLVE_CAPTURE = "admin_resolve_capture"
ADMIN_RESOLVE_RELEASE = "admin_resolve_release"

VISIT_ACTIONS = (
    PROVIDER_CONFIRM,
    CLIENT_CONFIRM,
    CLIENT_DISPUTE,
    ADMIN_RESOLVE_CAPTURE,
    ADMIN_RESOLVE_RELEASE,
)

# Payment actions reported back to the caller
ACTION_NONE = "none"
ACTION_CAPTURED = "captured"
ACTION_ALREADY_CAPTURED = "already_captured"
ACTION_RELEASED = "released"
ACTION_ALREADY_RELEASED = "already_released"

DEFAULT_DISPUTE_REASON = "No especificada"

RESOLVED_DISPUTE_STATUSES = frozenset(
    {VisitDisputeStatus.RESOLVED_PROVIDER, VisitDisputeStatus.RESOLVED_CLIENT}
)

# Admin resolution lock TTL (seconds)
RESOLVE_LOCK_TTL = 60


class VisitAuthorizationService(BaseService):
    """
    Visit fee authorization and the visit confirmation handshake.

    Methods:
        create_authorization: Authorize the visit fee (client)
        get_authorization_status: Current authorization state (client)
        confirm_visit: provider_confirm, client_confirm, client_dispute,
            admin_resolve_capture, admin_resolve_release
    """

    # =========================================================================
    # Authorization
    # =========================================================================

    @classmethod
    def create_authorization(cls, ctx: AuthContext, job_id) -> ServiceResult[dict]:
        """
        Create, or return the existing, visit fee authorization for a job.

        At most one non-terminal authorization exists per job: an existing
        reference is returned as-is unless Stripe reports it canceled.

        Returns:
            ServiceResult with {client_secret, payment_intent_id, status,
            already_exists}

        Raises:
            PermissionDeniedError: Caller is not the job's client
            ConflictError: Visit fee already paid, or a concurrent request
                stored another authorization
            GatewayError: Stripe failure
        """
        ctx.require_authenticated()
        job = get_job_or_404(job_id)
        cls._require_client(ctx, job)

        if job.visit_fee_paid:
            raise ConflictError(
                "La visita ya fue pagada",
                error_code="VISIT_ALREADY_PAID",
            )

        logger = cls.get_logger()
        previous_reference = job.stripe_visit_payment_intent_id

        if previous_reference:
            snapshot = StripeAdapter.retrieve_status(previous_reference)
            if snapshot.status != PI_CANCELED:
                logger.info(
                    "Returning existing visit authorization",
                    extra={
                        "job_id": str(job.id),
                        "payment_intent_id": snapshot.id,
                        "status": snapshot.status,
                    },
                )
                return ServiceResult.success(
                    {
                        "client_secret": snapshot.client_secret,
                        "payment_intent_id": snapshot.id,
                        "status": snapshot.status,
                        "already_exists": True,
                    }
                )

            logger.info(
                "Existing visit authorization canceled, creating a new one",
                extra={"job_id": str(job.id), "payment_intent_id": previous_reference},
            )
            idempotency_key = IdempotencyKeyGenerator.generate(
                "visit_auth_replace", previous_reference
            )
        else:
            idempotency_key = IdempotencyKeyGenerator.generate("visit_auth", job.id)

        customer_id = StripeAdapter.ensure_customer(job.client)
        result = StripeAdapter.create_authorization(
            amount_cents=settings.VISIT_FEE_CENTS,
            job_id=job.id,
            user_id=job.client_id,
            customer_id=customer_id,
            idempotency_key=idempotency_key,
        )

        stored = compare_and_set(
            Job,
            job.id,
            {"stripe_visit_payment_intent_id": previous_reference},
            stripe_visit_payment_intent_id=result.reference_id,
        )
        if not stored:
            logger.warning(
                "Visit authorization stored concurrently, voiding duplicate",
                extra={"job_id": str(job.id), "payment_intent_id": result.reference_id},
            )
            StripeAdapter.cancel(
                result.reference_id,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "visit_auth_void", result.reference_id
                ),
            )
            raise ConflictError(
                "Otra solicitud ya creó la autorización, intenta de nuevo",
                error_code="AUTHORIZATION_CONFLICT",
            )

        logger.info(
            "Visit authorization created",
            extra={
                "job_id": str(job.id),
                "payment_intent_id": result.reference_id,
                "amount_cents": settings.VISIT_FEE_CENTS,
            },
        )
        return ServiceResult.success(
            {
                "client_secret": result.client_secret,
                "payment_intent_id": result.reference_id,
                "status": result.status,
                "already_exists": False,
            }
        )

    @classmethod
    def get_authorization_status(cls, ctx: AuthContext, job_id) -> ServiceResult[dict]:
        """
        Report the visit fee authorization state for the client's job page.

        Raises:
            PermissionDeniedError: Caller is not the job's client
            GatewayError: Stripe failure while reading the PaymentIntent
        """
        ctx.require_authenticated()
        job = get_job_or_404(job_id)
        cls._require_client(ctx, job)

        payload: dict[str, Any] = {
            "payment_intent_id": job.stripe_visit_payment_intent_id or None,
            "client_secret": None,
            "needs_creation": False,
            "amount": settings.VISIT_FEE_CENTS,
            "job": {
                "id": str(job.id),
                "title": job.title,
                "scheduled_at": job.scheduled_at.isoformat() if job.scheduled_at else None,
                "status": job.status,
            },
            "provider": cls._provider_summary(job),
        }

        if job.visit_fee_paid:
            payload["status"] = "paid"
            return ServiceResult.success(payload)

        if not job.stripe_visit_payment_intent_id:
            payload["status"] = "needs_creation"
            payload["needs_creation"] = True
            return ServiceResult.success(payload)

        snapshot = StripeAdapter.retrieve_status(job.stripe_visit_payment_intent_id)
        payload["payment_intent_id"] = snapshot.id

        if snapshot.status in CLIENT_SECRET_STATUSES:
            payload["status"] = snapshot.status
            payload["client_secret"] = snapshot.client_secret
        elif snapshot.status == PI_PROCESSING:
            payload["status"] = "processing"
        elif snapshot.status == PI_REQUIRES_CAPTURE:
            payload["status"] = "authorized"
        elif snapshot.status == PI_SUCCEEDED:
            payload["status"] = "paid"
        elif snapshot.status == PI_CANCELED:
            payload["status"] = "canceled"
            payload["needs_creation"] = True
        else:
            payload["status"] = snapshot.status

        return ServiceResult.success(payload)

    # =========================================================================
    # Visit Confirmation
    # =========================================================================

    @classmethod
    def confirm_visit(
        cls,
        ctx: AuthContext,
        job_id,
        action: str,
        reason: str | None = None,
    ) -> ServiceResult[dict]:
        """
        Run one step of the visit confirmation handshake.

        Raises:
            ValidationError: Unknown action ("Acción inválida")
            PermissionDeniedError: Caller may not perform this action
            ConflictError: Job not in a state that allows the action
            GatewayError: Capture or void failed; nothing was written
        """
        ctx.require_authenticated()
        handlers = {
            PROVIDER_CONFIRM: cls._provider_confirm,
            CLIENT_CONFIRM: cls._client_confirm,
            CLIENT_DISPUTE: cls._client_dispute,
            ADMIN_RESOLVE_CAPTURE: cls._admin_resolve_capture,
            ADMIN_RESOLVE_RELEASE: cls._admin_resolve_release,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValidationError(
                "Acción inválida",
                error_code="INVALID_ACTION",
                details={"action": action, "allowed": list(VISIT_ACTIONS)},
            )

        if action in (ADMIN_RESOLVE_CAPTURE, ADMIN_RESOLVE_RELEASE):
            ctx.require_admin()

        job = get_job_or_404(job_id)
        return handler(ctx, job, reason)

    @classmethod
    def _provider_confirm(cls, ctx: AuthContext, job: Job, reason) -> ServiceResult[dict]:
        if not job.is_provider(ctx.user_id):
            raise PermissionDeniedError(
                "No estás asignado a este trabajo",
                error_code="NOT_JOB_PROVIDER",
            )

        deadline = timezone.now() + timedelta(hours=settings.VISIT_CONFIRMATION_HOURS)
        confirmed = compare_and_set(
            Job,
            job.id,
            {"provider_confirmed_visit": False},
            provider_confirmed_visit=True,
            visit_confirmation_deadline=deadline,
        )
        if not confirmed:
            return ServiceResult.success(
                {
                    "message": "El proveedor ya confirmó la visita",
                    "already_confirmed": True,
                }
            )

        NotificationService.create_notification(
            recipient_id=job.client_id,
            type=NotificationKind.VISIT_CONFIRMATION_REQUIRED,
            title="Confirma la visita del proveedor",
            message=(
                f'El proveedor ha confirmado que completó la visita para "{job.title}". '
                "Por favor confirma si estás satisfecho."
            ),
            link="/active-jobs",
            data={"job_id": str(job.id), "deadline": deadline.isoformat()},
        )

        cls.get_logger().info(
            "Provider confirmed visit",
            extra={"job_id": str(job.id), "deadline": deadline.isoformat()},
        )
        return ServiceResult.success(
            {
                "message": "Visita confirmada por el proveedor",
                "already_confirmed": False,
                "deadline": deadline.isoformat(),
            }
        )

    @classmethod
    def _client_confirm(cls, ctx: AuthContext, job: Job, reason) -> ServiceResult[dict]:
        cls._require_client(ctx, job)
        cls._require_provider_confirmed(job)

        if job.client_confirmed_visit:
            return ServiceResult.success(
                {
                    "message": "El cliente ya confirmó la visita",
                    "already_confirmed": True,
                }
            )

        payment_action = cls._capture_visit_fee(job)
        if payment_action not in (ACTION_CAPTURED, ACTION_ALREADY_CAPTURED):
            raise ConflictError(
                "La autorización del pago de visita no se puede cobrar",
                error_code="VISIT_FEE_NOT_CAPTURABLE",
                details={"payment_action": payment_action},
            )

        confirmed = compare_and_set(
            Job,
            job.id,
            {"client_confirmed_visit": False},
            client_confirmed_visit=True,
            provider_visited=True,
            visit_fee_paid=True,
        )
        if not confirmed:
            return ServiceResult.success(
                {
                    "message": "El cliente ya confirmó la visita",
                    "already_confirmed": True,
                    "payment_action": payment_action,
                }
            )

        if job.provider_id:
            NotificationService.create_notification(
                recipient_id=job.provider_id,
                type=NotificationKind.VISIT_CONFIRMED_BY_CLIENT,
                title="¡Visita confirmada!",
                message=(
                    f'El cliente confirmó la visita para "{job.title}". '
                    "El pago ha sido procesado."
                ),
                link="/provider-portal/jobs",
                data={"job_id": str(job.id)},
            )

        cls.get_logger().info(
            "Client confirmed visit",
            extra={"job_id": str(job.id), "payment_action": payment_action},
        )
        return ServiceResult.success(
            {
                "message": "Visita confirmada",
                "already_confirmed": False,
                "payment_action": payment_action,
            }
        )

    @classmethod
    def _client_dispute(cls, ctx: AuthContext, job: Job, reason) -> ServiceResult[dict]:
        cls._require_client(ctx, job)
        cls._require_provider_confirmed(job)

        reason = (reason or "").strip()
        disputed = compare_and_set(
            Job,
            job.id,
            {"visit_dispute_status__isnull": True},
            visit_dispute_status=VisitDisputeStatus.PENDING_SUPPORT,
            visit_dispute_reason=reason or DEFAULT_DISPUTE_REASON,
        )
        if not disputed:
            raise ConflictError(
                "Ya existe una disputa para esta visita",
                error_code="DISPUTE_ALREADY_OPEN",
            )

        NotificationService.notify_admins(
            type=NotificationKind.VISIT_DISPUTE_OPENED,
            title="Nueva disputa de visita",
            message=(
                f'El cliente ha abierto una disputa para "{job.title}". '
                f"Razón: {reason or DEFAULT_DISPUTE_REASON}"
            ),
            link="/admin-dashboard",
            data={"job_id": str(job.id)},
        )
        if job.provider_id:
            NotificationService.create_notification(
                recipient_id=job.provider_id,
                type=NotificationKind.VISIT_DISPUTED,
                title="Disputa abierta",
                message=(
                    f'El cliente ha reportado un problema con la visita para "{job.title}". '
                    "El equipo de soporte revisará el caso."
                ),
                link="/provider-portal/jobs",
                data={"job_id": str(job.id)},
            )

        cls.get_logger().info(
            "Client disputed visit",
            extra={"job_id": str(job.id), "reason": reason},
        )
        return ServiceResult.success(
            {
                "message": "Disputa enviada a soporte",
                "visit_dispute_status": VisitDisputeStatus.PENDING_SUPPORT.value,
            }
        )

    @classmethod
    def _admin_resolve_capture(cls, ctx: AuthContext, job: Job, reason) -> ServiceResult[dict]:
        with DistributedLock(f"visit:resolve:{job.id}", ttl=RESOLVE_LOCK_TTL):
            if cls._dispute_already_resolved(job):
                return cls._already_resolved_result(job)

            payment_action = cls._capture_visit_fee(job)
            captured = payment_action in (ACTION_CAPTURED, ACTION_ALREADY_CAPTURED)

            values: dict[str, Any] = {
                "visit_dispute_status": VisitDisputeStatus.RESOLVED_PROVIDER,
                "provider_visited": True,
            }
            if captured:
                values["visit_fee_paid"] = True
            resolved = compare_and_set(
                Job,
                job.id,
                {"visit_dispute_status": VisitDisputeStatus.PENDING_SUPPORT},
                **values,
            )
            if not resolved:
                return cls._already_resolved_result(job)

        if captured:
            payment_note = "El pago ha sido procesado."
        else:
            payment_note = "No fue posible cobrar el pago de la visita; soporte dará seguimiento."
        cls._notify_resolution(
            job,
            client_title="Disputa resuelta",
            client_message=(
                f'La disputa para "{job.title}" ha sido resuelta a favor del proveedor. '
                f"{payment_note}"
            ),
            provider_title="Disputa resuelta a tu favor",
            provider_message=(
                f'La disputa para "{job.title}" ha sido resuelta a tu favor. {payment_note}'
            ),
        )

        cls.get_logger().info(
            "Admin resolved visit dispute for provider",
            extra={
                "job_id": str(job.id),
                "admin_id": ctx.user_id,
                "payment_action": payment_action,
            },
        )
        return ServiceResult.success(
            {
                "message": "Disputa resuelta a favor del proveedor",
                "payment_action": payment_action,
                "already_resolved": False,
            }
        )

    @classmethod
    def _admin_resolve_release(cls, ctx: AuthContext, job: Job, reason) -> ServiceResult[dict]:
        with DistributedLock(f"visit:resolve:{job.id}", ttl=RESOLVE_LOCK_TTL):
            if cls._dispute_already_resolved(job):
                return cls._already_resolved_result(job)

            payment_action = ACTION_NONE
            if job.stripe_visit_payment_intent_id:
                snapshot = StripeAdapter.retrieve_status(job.stripe_visit_payment_intent_id)
                if snapshot.status in RELEASABLE_STATUSES:
                    StripeAdapter.cancel(
                        snapshot.id,
                        idempotency_key=IdempotencyKeyGenerator.generate(
                            "visit_void", snapshot.id
                        ),
                    )
                    payment_action = ACTION_RELEASED
                elif snapshot.status == PI_CANCELED:
                    payment_action = ACTION_ALREADY_RELEASED
                else:
                    raise ConflictError(
                        "El pago de la visita no se puede liberar en su estado actual",
                        error_code="VISIT_FEE_NOT_RELEASABLE",
                        details={"payment_intent_status": snapshot.status},
                    )

            resolved = compare_and_set(
                Job,
                job.id,
                {"visit_dispute_status": VisitDisputeStatus.PENDING_SUPPORT},
                visit_dispute_status=VisitDisputeStatus.RESOLVED_CLIENT,
                visit_fee_paid=False,
            )
            if not resolved:
                return cls._already_resolved_result(job)

        cls._notify_resolution(
            job,
            client_title="Disputa resuelta",
            client_message=(
                f'La disputa para "{job.title}" ha sido resuelta a tu favor. '
                "Los fondos han sido liberados."
            ),
            provider_title="Disputa resuelta",
            provider_message=(
                f'La disputa para "{job.title}" ha sido resuelta a favor del cliente. '
                "Los fondos han sido liberados."
            ),
        )

        cls.get_logger().info(
            "Admin resolved visit dispute for client",
            extra={
                "job_id": str(job.id),
                "admin_id": ctx.user_id,
                "payment_action": payment_action,
            },
        )
        return ServiceResult.success(
            {
                "message": "Disputa resuelta a favor del cliente",
                "payment_action": payment_action,
                "already_resolved": False,
            }
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _dispute_already_resolved(job: Job) -> bool:
        """
        Re-read the dispute state under the resolve lock.

        Raises:
            ConflictError: The job has no open dispute
        """
        job.refresh_from_db(fields=["visit_dispute_status"])
        if job.visit_dispute_status in RESOLVED_DISPUTE_STATUSES:
            return True
        if job.visit_dispute_status != VisitDisputeStatus.PENDING_SUPPORT:
            raise ConflictError(
                "No hay una disputa abierta para esta visita",
                error_code="NO_OPEN_DISPUTE",
            )
        return False

    @classmethod
    def _already_resolved_result(cls, job: Job) -> ServiceResult[dict]:
        job.refresh_from_db(fields=["visit_dispute_status"])
        cls.get_logger().info(
            "Visit dispute already resolved",
            extra={"job_id": str(job.id), "visit_dispute_status": job.visit_dispute_status},
        )
        return ServiceResult.success(
            {
                "message": "La disputa ya fue resuelta",
                "payment_action": ACTION_NONE,
                "visit_dispute_status": job.visit_dispute_status,
                "already_resolved": True,
            }
        )

    @classmethod
    def _capture_visit_fee(cls, job: Job) -> str:
        """
        Capture the job's authorization if it is waiting for capture.

        Returns the payment action: captured, already_captured, or none when
        there is no reference or the PaymentIntent is in another status.
        """
        if not job.stripe_visit_payment_intent_id:
            return ACTION_NONE

        snapshot = StripeAdapter.retrieve_status(job.stripe_visit_payment_intent_id)
        if snapshot.status == PI_REQUIRES_CAPTURE:
            StripeAdapter.capture(
                snapshot.id,
                idempotency_key=IdempotencyKeyGenerator.generate("visit_capture", snapshot.id),
            )
            cls.get_logger().info(
                "Visit fee captured",
                extra={"job_id": str(job.id), "payment_intent_id": snapshot.id},
            )
            return ACTION_CAPTURED
        if snapshot.status == PI_SUCCEEDED:
            return ACTION_ALREADY_CAPTURED

        cls.get_logger().warning(
            "Visit fee authorization not capturable",
            extra={
                "job_id": str(job.id),
                "payment_intent_id": snapshot.id,
                "status": snapshot.status,
            },
        )
        return ACTION_NONE

    @classmethod
    def _notify_resolution(
        cls,
        job: Job,
        client_title: str,
        client_message: str,
        provider_title: str,
        provider_message: str,
    ) -> None:
        data = {"job_id": str(job.id)}
        NotificationService.create_notification(
            recipient_id=job.client_id,
            type=NotificationKind.DISPUTE_RESOLVED,
            title=client_title,
            message=client_message,
            link="/active-jobs",
            data=data,
        )
        if job.provider_id:
            NotificationService.create_notification(
                recipient_id=job.provider_id,
                type=NotificationKind.DISPUTE_RESOLVED,
                title=provider_title,
                message=provider_message,
                link="/provider-portal/jobs",
                data=data,
            )

    @staticmethod
    def _require_client(ctx: AuthContext, job: Job) -> None:
        if not job.is_client(ctx.user_id):
            raise PermissionDeniedError(
                "No eres el cliente de este trabajo",
                error_code="NOT_JOB_CLIENT",
            )

    @staticmethod
    def _require_provider_confirmed(job: Job) -> None:
        if not job.provider_confirmed_visit:
            raise ConflictError(
                "El proveedor aún no ha confirmado la visita",
                error_code="PROVIDER_NOT_CONFIRMED",
            )

    @staticmethod
    def _provider_summary(job: Job) -> dict | None:
        if job.provider is None:
            return None
        return {"display_name": job.provider.display_name}
