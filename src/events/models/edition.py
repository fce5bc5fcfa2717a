import typing as t
from datetime import datetime

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from common.models import SoftDeleteQuerySet, TimeStampedModel

from .mixins import SoftDeleteMixin
from .organization import EventSeries, Organization


class EventEditionQuerySet(SoftDeleteQuerySet):
    def published(self) -> t.Self:
        """Editions visible to the public."""
        return self.alive().filter(visibility=EventEdition.Visibility.PUBLISHED)


class EventEdition(SoftDeleteMixin, TimeStampedModel):
    """One yearly occurrence of an event series with its own distances and capacity."""

    class Visibility(models.TextChoices):
        DRAFT = "draft"
        PUBLISHED = "published"
        UNLISTED = "unlisted"
        ARCHIVED = "archived"

    series = models.ForeignKey(EventSeries, on_delete=models.CASCADE, related_name="editions")
    edition_label = models.CharField(max_length=64)
    slug = models.SlugField(max_length=255)
    visibility = models.CharField(max_length=16, choices=Visibility.choices, default=Visibility.DRAFT, db_index=True)
    starts_at = models.DateTimeField(null=True, blank=True)
    registration_opens_at = models.DateTimeField(null=True, blank=True)
    registration_closes_at = models.DateTimeField(null=True, blank=True)
    is_registration_paused = models.BooleanField(default=False)
    shared_capacity = models.PositiveIntegerField(
        null=True, blank=True, help_text="Seats shared by every distance configured with the shared pool scope."
    )

    objects = EventEditionQuerySet.as_manager()

    class Meta:
        constraints = [models.UniqueConstraint(fields=["series", "slug"], name="unique_edition_slug_per_series")]

    def __str__(self) -> str:
        return f"{self.series.name} {self.edition_label}"

    @property
    def organization(self) -> Organization:
        """The owning organization."""
        return self.series.organization


class EventDistance(SoftDeleteMixin, TimeStampedModel):
    class CapacityScope(models.TextChoices):
        PER_DISTANCE = "per_distance"
        SHARED_POOL = "shared_pool"

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="distances")
    label = models.CharField(max_length=64)
    distance_value = models.DecimalField(max_digits=7, decimal_places=2, null=True, blank=True)
    distance_unit = models.CharField(max_length=8, default="km")
    capacity = models.PositiveIntegerField(null=True, blank=True, help_text="Empty means unlimited.")
    capacity_scope = models.CharField(
        max_length=16, choices=CapacityScope.choices, default=CapacityScope.PER_DISTANCE
    )
    sort_order = models.PositiveIntegerField(default=0)

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        ordering = ["sort_order", "label"]

    def __str__(self) -> str:
        return self.label

    @property
    def uses_shared_pool(self) -> bool:
        """Whether this distance draws from the edition-wide pool."""
        return self.capacity_scope == self.CapacityScope.SHARED_POOL


class PricingTierQuerySet(models.QuerySet["PricingTier"]):
    def active_at(self, now: datetime) -> t.Self:
        """Tiers whose sale window contains ``now``."""
        return self.filter(
            Q(starts_at__isnull=True) | Q(starts_at__lte=now),
            Q(ends_at__isnull=True) | Q(ends_at__gte=now),
            deleted_at__isnull=True,
        ).order_by("sort_order", "starts_at")


class PricingTier(SoftDeleteMixin, TimeStampedModel):
    """Time-boxed price for a distance (early bird, regular, late)."""

    distance = models.ForeignKey(EventDistance, on_delete=models.CASCADE, related_name="pricing_tiers")
    label = models.CharField(max_length=64, blank=True)
    price_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=3, default="MXN")
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)
    sort_order = models.PositiveIntegerField(default=0)

    objects = PricingTierQuerySet.as_manager()

    class Meta:
        ordering = ["sort_order"]

    def __str__(self) -> str:
        return f"{self.label or 'Tier'} ({self.price_cents})"

    def clean(self) -> None:
        """Ensure the sale window is not inverted."""
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValidationError({"ends_at": "Must be after starts_at."})


class AddOn(SoftDeleteMixin, TimeStampedModel):
    """Optional extra sold with a registration (t-shirt, medal engraving, ...)."""

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="add_ons")
    distance = models.ForeignKey(
        EventDistance,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="add_ons",
        help_text="Restrict the add-on to one distance. Empty means any distance.",
    )
    title = models.CharField(max_length=128)
    is_active = models.BooleanField(default=True)

    objects = SoftDeleteQuerySet.as_manager()

    def __str__(self) -> str:
        return self.title


class AddOnOption(SoftDeleteMixin, TimeStampedModel):
    add_on = models.ForeignKey(AddOn, on_delete=models.CASCADE, related_name="options")
    label = models.CharField(max_length=128)
    price_cents = models.PositiveIntegerField(default=0)
    max_qty_per_order = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(99)])
    is_active = models.BooleanField(default=True)

    objects = SoftDeleteQuerySet.as_manager()

    def __str__(self) -> str:
        return f"{self.add_on.title}: {self.label}"
