"""
Abstract base model shared by every domain model.

Base Classes:
    BaseModel: Abstract model with created_at / updated_at timestamps

For the UUID primary key mixin, see core.model_mixins.

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Room(UUIDPrimaryKeyMixin, BaseModel):
        name = models.CharField(max_length=100, null=True)

Note:
    List mixins before BaseModel in the bases.
    Queryset .update() calls bypass auto_now; set updated_at explicitly there.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract model adding creation and modification timestamps.

    Fields:
        created_at: Set once on insert, indexed for time-ordered reads
        updated_at: Refreshed on every save()
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
        """Default string representation using primary key."""
        return f"{self.__class__.__name__}(id={self.pk})"
