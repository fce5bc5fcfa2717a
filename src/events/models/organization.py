from django.conf import settings
from django.db import models

from common.models import SoftDeleteQuerySet, TimeStampedModel

from .mixins import SlugFromNameMixin, SoftDeleteMixin


class Organization(SlugFromNameMixin, SoftDeleteMixin, TimeStampedModel):
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="owned_organizations")
    staff_members = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name="staff_organizations")

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def is_owner_or_staff(self, user_id: object) -> bool:
        """Whether the user may manage this organization's events."""
        return self.owner_id == user_id or self.staff_members.filter(id=user_id).exists()


class EventSeries(SlugFromNameMixin, SoftDeleteMixin, TimeStampedModel):
    """A recurring race, e.g. "City Marathon", that runs one edition per year."""

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="event_series")
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255)

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        verbose_name_plural = "Event series"
        constraints = [models.UniqueConstraint(fields=["organization", "slug"], name="unique_series_slug_per_org")]

    def __str__(self) -> str:
        return self.name
