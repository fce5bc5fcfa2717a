from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import Q

from common.models import TimeStampedModel

from .edition import EventEdition
from .registration import Registration


class RegistrationInviteQuerySet(models.QuerySet["RegistrationInvite"]):
    def live(self, now: datetime) -> "RegistrationInviteQuerySet":
        """Current invites that can still be claimed."""
        return self.filter(
            is_current=True,
            status__in=[RegistrationInvite.Status.DRAFT, RegistrationInvite.Status.SENT],
            expires_at__gt=now,
        )


class RegistrationInvite(TimeStampedModel):
    """Invitation to claim a pre-created registration.

    Only one invite per (edition, email) is current at a time. Rotating the
    token supersedes the previous invite instead of mutating it.
    """

    class Status(models.TextChoices):
        DRAFT = "draft"
        SENT = "sent"
        CLAIMED = "claimed"
        CANCELLED = "cancelled"
        SUPERSEDED = "superseded"
        EXPIRED = "expired"

    edition = models.ForeignKey(EventEdition, on_delete=models.CASCADE, related_name="invites")
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="invites")
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    email = models.EmailField()
    email_normalized = models.EmailField(db_index=True)
    date_of_birth = models.DateField(null=True, blank=True)
    token_hash = models.CharField(max_length=64, unique=True)
    token_prefix = models.CharField(max_length=16)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT, db_index=True)
    is_current = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    supersedes = models.OneToOneField(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="superseded_by"
    )
    claimed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="claimed_invites"
    )
    claimed_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    objects = RegistrationInviteQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["edition", "email_normalized"],
                condition=Q(is_current=True),
                name="unique_current_invite_per_edition_email",
            )
        ]

    def __str__(self) -> str:
        return f"Invite {self.token_prefix} ({self.status})"
