from django.db import models

from common.models import TimeStampedModel


class ProFeatureVisibility(models.TextChoices):
    LOCKED = "locked"
    HIDDEN = "hidden"


class ProFeatureConfig(TimeStampedModel):
    """Runtime switches for a feature of the catalog.

    A missing row means the feature is enabled with its catalog visibility.
    """

    feature_key = models.CharField(max_length=64, unique=True)
    enabled = models.BooleanField(default=True)
    visibility_override = models.CharField(
        max_length=16, choices=ProFeatureVisibility.choices, null=True, blank=True
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["feature_key"]

    def __str__(self) -> str:
        return self.feature_key
