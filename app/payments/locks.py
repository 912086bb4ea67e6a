"""
Concurrency control utilities for the payment lifecycle.

Two complementary mechanisms:

1. **Distributed Locks** (DistributedLock, single_flight)
   - Redis-based mutual exclusion across web and Celery processes
   - TTL prevents deadlocks from crashed processes
   - Use for: escrow release per invoice, single-flight sweeps

2. **Conditional Updates** (compare_and_set, transition)
   - UPDATE ... WHERE <expected state>, then check the affected row count
   - No blocking - a lost race simply updates zero rows
   - Use for: every state transition on Job, Invoice, Payout and
     RescheduleRequest

Usage:

    from payments.locks import DistributedLock, compare_and_set, single_flight

    with DistributedLock(f"escrow:release:{invoice.id}", ttl=60):
        release(invoice)

    with single_flight("sweep:auto_complete_jobs") as acquired:
        if not acquired:
            return {"skipped": True}
        ...

    moved = compare_and_set(
        Invoice,
        invoice.id,
        expected={"status__in": [InvoiceStatus.PENDING, InvoiceStatus.ACCEPTED]},
        status=InvoiceStatus.PAID,
    )

Note:
    The sweeps hold a single-flight lock AND write through conditional
    updates, so a second run that slips past an expired lock still cannot
    process a row twice.
"""

from __future__ import annotations

import time
import uuid as uuid_module
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db.models import F
from django.utils import timezone
from django_redis import get_redis_connection

from payments.exceptions import InvalidStateTransitionError, LockAcquisitionError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any

    from django.db import models
    from redis import Redis


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents accidental release by other processes
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        with DistributedLock(f"escrow:release:{invoice_id}", ttl=60):
            EscrowReleaseService.release_for_invoice(invoice)

        lock = DistributedLock("sweep:check_visit_confirmations", blocking=False)
        try:
            with lock:
                ...
        except LockAcquisitionError:
            # Another worker is already running the sweep
            ...

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Lua script for atomic check-and-extend
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis):
                    return True
                time.sleep(0.05)

            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it (or it expired)
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """
        Reset the lock TTL if we hold it.

        The new TTL replaces the remaining time (not added to it).
        """
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        result = redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


@contextmanager
def single_flight(key: str, ttl: int = 300) -> Iterator[bool]:
    """
    Non-blocking lock for periodic sweeps.

    Yields True when this process owns the run, False when another process
    already holds the lock. The lock is released on exit.

    Example:
        with single_flight("sweep:auto_complete_jobs") as acquired:
            if not acquired:
                return {"skipped": True}
            ...
    """
    lock = DistributedLock(key, ttl=ttl, blocking=False)
    try:
        lock.acquire()
    except LockAcquisitionError:
        yield False
        return

    try:
        yield True
    finally:
        lock.release()


# =============================================================================
# Conditional Updates
# =============================================================================


def compare_and_set(
    model_class: type[models.Model],
    pk: Any,
    expected: dict[str, Any],
    **values: Any,
) -> bool:
    """
    Update a row only if it still matches the expected state.

    Executes a single UPDATE ... WHERE pk=<pk> AND <expected> and reports
    whether exactly one row changed. updated_at is refreshed and a `version`
    field, when the model has one, is incremented.

    Args:
        model_class: Django model class
        pk: Primary key of the row
        expected: Field lookups the row must match (e.g. {"status": "pending"})
        **values: Field values to write

    Returns:
        True if the row was updated, False if it was missing or no longer
        in the expected state

    Example:
        if not compare_and_set(
            Job, job.id, {"completion_status__isnull": True},
            completion_status=CompletionStatus.PROVIDER_MARKED_DONE,
            completion_marked_at=timezone.now(),
        ):
            # Another request already marked the job
            ...
    """
    field_names = {f.name for f in model_class._meta.concrete_fields}
    if "updated_at" in field_names:
        values.setdefault("updated_at", timezone.now())
    if "version" in field_names:
        values.setdefault("version", F("version") + 1)

    rows = model_class.objects.filter(pk=pk, **expected).update(**values)
    return rows == 1


def transition(
    model_class: type[models.Model],
    pk: Any,
    expected: dict[str, Any],
    **values: Any,
) -> None:
    """
    compare_and_set that raises when no row was updated.

    Raises:
        InvalidStateTransitionError: Row missing or not in the expected state
    """
    if not compare_and_set(model_class, pk, expected, **values):
        model_name = model_class.__name__
        raise InvalidStateTransitionError(
            f"{model_name} cambió de estado, intenta de nuevo",
            details={
                "model": model_name,
                "pk": str(pk),
                "expected": {k: str(v) for k, v in expected.items()},
            },
        )


__all__ = [
    "DistributedLock",
    "compare_and_set",
    "single_flight",
    "transition",
]
