import typing as t

from django.db import models
from django.utils import timezone
from django.utils.text import slugify


class SlugFromNameMixin(models.Model):
    class Meta:
        abstract = True

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Override save to auto-create slug."""
        if not self.slug:  # type: ignore[has-type]
            self.slug = slugify(self.name)  # type: ignore[attr-defined]
        super().save(*args, **kwargs)


class SoftDeleteMixin(models.Model):
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    class Meta:
        abstract = True

    @property
    def is_deleted(self) -> bool:
        """Whether the row has been soft-deleted."""
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Mark the row as deleted without removing it."""
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])
