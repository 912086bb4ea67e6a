"""
Abstract base models shared by every Chamby app.

Base Classes:
    BaseModel: created_at / updated_at timestamps
    UUIDPrimaryKeyMixin: UUID primary key

Usage:
    from core.models import BaseModel, UUIDPrimaryKeyMixin

    class Invoice(UUIDPrimaryKeyMixin, BaseModel):
        subtotal = models.PositiveIntegerField()

Note:
    List mixins before BaseModel in the bases. Job, Invoice and Payout ids
    travel through Stripe metadata and notification links, so they are
    UUIDs rather than sequential integers.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """UUID primary key, generated on instantiation."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Fields:
        created_at: Set once when the row is inserted
        updated_at: Refreshed on every save()

    Note:
        QuerySet.update() bypasses auto_now, so conditional updates that
        transition state must pass updated_at=timezone.now() explicitly.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
