import re
import typing as t
import uuid

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models

from common.models import TimeStampedModel
from common.utils import normalize_email


class FinishlineUserQueryset(models.QuerySet["FinishlineUser"]):
    """Queryset for FinishlineUser."""

    def alive(self) -> t.Self:
        """Users that have not been soft-deleted."""
        return self.filter(deleted_at__isnull=True)

    def unverified_created_before(self, cutoff: t.Any) -> t.Self:
        """Self-signup accounts that never verified their email before the cutoff."""
        return self.filter(email_verified=False, is_internal=False, is_staff=False, date_joined__lt=cutoff)


class FinishlineUserManager(UserManager["FinishlineUser"]):
    def get_queryset(self) -> FinishlineUserQueryset:
        """Get queryset for FinishlineUser."""
        return FinishlineUserQueryset(self.model, using=self._db)

    def alive(self) -> FinishlineUserQueryset:
        """Shortcut for non-deleted users."""
        return self.get_queryset().alive()

    def unverified_created_before(self, cutoff: t.Any) -> FinishlineUserQueryset:
        """Shortcut for unverified self-signup accounts older than ``cutoff``."""
        return self.get_queryset().unverified_created_before(cutoff)


class FinishlineUser(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email_verified = models.BooleanField(default=False, db_index=True)
    is_internal = models.BooleanField(
        default=False, help_text="Internal team accounts bypass Pro gating and billing checks."
    )
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    language = models.CharField(
        max_length=7,
        choices=settings.LANGUAGES,
        default=settings.LANGUAGE_CODE,
        help_text="User's preferred language",
    )

    objects = FinishlineUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    @property
    def normalized_email(self) -> str:
        """Email in the canonical form used for hashing and invite matching."""
        return normalize_email(self.email or "")

    @property
    def display_name(self) -> str:
        """Full name, falling back to a prettified username."""
        return self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()


class Profile(TimeStampedModel):
    """Participant data reused when snapshotting registrants."""

    user = models.OneToOneField(FinishlineUser, on_delete=models.CASCADE, related_name="profile")
    date_of_birth = models.DateField(null=True, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    gender = models.CharField(max_length=32, blank=True)
    gender_identity = models.CharField(max_length=64, blank=True)
    city = models.CharField(max_length=128, blank=True)
    state = models.CharField(max_length=128, blank=True)
    country = models.CharField(max_length=2, blank=True)
    emergency_contact_name = models.CharField(max_length=255, blank=True)
    emergency_contact_phone = models.CharField(max_length=32, blank=True)

    def __str__(self) -> str:
        return f"Profile of {self.user_id}"
